"""
Document Ingestion Module
=========================
Extract per-page text from uploaded PDFs using PyPDFLoader.
"""

import os
import hashlib
import logging
import tempfile
from typing import List

from langchain_community.document_loaders import PyPDFLoader

from smartlearn.core.exceptions import DocumentUnreadable
from .models import Page

logger = logging.getLogger(__name__)


def compute_content_hash(file_bytes: bytes) -> str:
    """
    Compute MD5 hash of uploaded content for logging and deduplication.

    Args:
        file_bytes: Raw file content

    Returns:
        MD5 hash string
    """
    return hashlib.md5(file_bytes).hexdigest()


class PdfPageExtractor:
    """
    Turns raw PDF bytes into an ordered list of pages.

    Page numbers are 1-based and follow the PDF's own page order.
    """

    def __init__(self, extract_images: bool = False):
        self.extract_images = extract_images

    def extract_pages(self, file_bytes: bytes, filename: str = "document.pdf") -> List[Page]:
        """
        Extract text for every page.

        Args:
            file_bytes: Raw PDF content
            filename: Original filename, used in errors and logs

        Returns:
            List of Page records, one per PDF page

        Raises:
            DocumentUnreadable: If the PDF cannot be parsed or holds no text
        """
        if not file_bytes:
            raise DocumentUnreadable(filename, "file is empty")

        logger.info(f"Loading PDF: {filename} ({len(file_bytes)} bytes, md5={compute_content_hash(file_bytes)})")

        # PyPDFLoader works on paths, so spill the upload to a temp file
        fd, tmp_path = tempfile.mkstemp(suffix=".pdf")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(file_bytes)

            loader = PyPDFLoader(tmp_path, extract_images=self.extract_images)
            raw_pages = loader.load()
        except Exception as e:
            logger.error(f"Error loading {filename}: {e}")
            raise DocumentUnreadable(filename, str(e)) from e
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        pages = [
            Page(page_number=index + 1, text=doc.page_content or "")
            for index, doc in enumerate(raw_pages)
        ]

        if not any(page.text.strip() for page in pages):
            raise DocumentUnreadable(filename, "no extractable text")

        logger.info(f"Loaded {len(pages)} pages from PDF")
        return pages
