# Utils package
from .helpers import (
    call_with_deadline,
    extract_json,
    round_half_up,
    percentage,
    generate_id,
    utcnow,
    slugify,
    safe_filename,
    is_valid_pdf,
    truncate,
)

__all__ = [
    "call_with_deadline",
    "extract_json",
    "round_half_up",
    "percentage",
    "generate_id",
    "utcnow",
    "slugify",
    "safe_filename",
    "is_valid_pdf",
    "truncate",
]
