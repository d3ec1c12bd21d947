"""
Video Recommendations Module
============================
Best-effort video suggestions for a document page.

Sources are tried in order (YouTube Data API, then plain search links)
and each is time-boxed. A failing or empty source hands over to the next
one; when all are exhausted the result is an empty list, never an error.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from typing import List, Optional, Sequence
from urllib.parse import quote_plus

import httpx
from pydantic import BaseModel, Field

from smartlearn.core.constants import Messages
from smartlearn.utils.helpers import call_with_deadline
from .config import rag_config

logger = logging.getLogger(__name__)


STOPWORDS = frozenset("""
a about above after again against all also am an and any are as at be because been
before being below between both but by can could did do does doing down during each
few for from further had has have having he her here hers herself him himself his how
i if in into is it its itself just let may me might more most must my myself no nor
not now of off on once only or other our ours ourselves out over own same shall she
should so some such than that the their theirs them themselves then there these they
this those through to too under until up upon use used using very was we were what
when where which while who whom why will with within without would you your yours
yourself yourselves figure table chapter page section example shown also however
thus therefore called many much one two three first second another each
""".split())

# Pages with fewer words are treated as covers, separators or blank pages
MIN_EDUCATIONAL_WORDS = 30


class VideoRecommendation(BaseModel):
    """One suggested video"""
    video_id: str
    title: str
    url: str
    description: str = ""
    thumbnail: Optional[str] = None
    channel_title: Optional[str] = None
    published_at: Optional[str] = None
    keyword: str = ""
    is_fallback: bool = False


class RecommendationResult(BaseModel):
    """Recommendations for a page and how they were found"""
    keywords: List[str] = Field(default_factory=list)
    recommendations: List[VideoRecommendation] = Field(default_factory=list)
    source: Optional[str] = None
    message: Optional[str] = None


def extract_keywords(text: str, max_keywords: int = 3) -> List[str]:
    """
    Pick search keywords from page text.

    The most frequent content words are combined into short phrases; the
    top word pairs that occur more than once come first.
    """
    words = [w for w in re.findall(r"[a-zA-Z][a-zA-Z\-]{3,}", text.lower()) if w not in STOPWORDS]
    if not words:
        return []

    counts = Counter(words)
    pairs = Counter(
        f"{a} {b}" for a, b in zip(words, words[1:]) if a != b
    )

    keywords: List[str] = []
    for phrase, count in pairs.most_common():
        if count < 2 or len(keywords) >= max_keywords:
            break
        keywords.append(phrase)

    for word, _ in counts.most_common():
        if len(keywords) >= max_keywords:
            break
        if not any(word in phrase.split() for phrase in keywords):
            keywords.append(word)

    return keywords


def is_educational(text: str) -> bool:
    """Rough check that a page has enough prose to search for."""
    return len(re.findall(r"\w+", text)) >= MIN_EDUCATIONAL_WORDS


class RecommendationSource(ABC):
    """A place to look up videos for keywords."""

    name: str = "source"

    @abstractmethod
    def search(self, keywords: Sequence[str], limit: int) -> List[VideoRecommendation]:
        ...


class YouTubeApiSource(RecommendationSource):
    """YouTube Data API v3 search; needs an API key."""

    name = "youtube_api"

    def __init__(
        self,
        api_key: Optional[str] = None,
        search_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None
    ):
        self.api_key = api_key if api_key is not None else rag_config.YOUTUBE_API_KEY
        self.search_url = search_url or rag_config.YOUTUBE_SEARCH_URL
        self.timeout = timeout or rag_config.RECOMMENDATION_TIMEOUT
        self._client = client

    def search(self, keywords: Sequence[str], limit: int) -> List[VideoRecommendation]:
        if not self.api_key:
            logger.info("YouTube API key not configured, skipping API search")
            return []

        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            videos: List[VideoRecommendation] = []
            seen = set()
            # Two keywords at most to keep quota usage low
            for keyword in list(keywords)[:2]:
                response = client.get(self.search_url, params={
                    "part": "snippet",
                    "q": f"{keyword} educational tutorial",
                    "type": "video",
                    "maxResults": limit,
                    "relevanceLanguage": "en",
                    "videoEmbeddable": "true",
                    "key": self.api_key,
                })
                if response.status_code == 403:
                    logger.warning("YouTube API quota exceeded or access forbidden")
                    break
                response.raise_for_status()

                for item in response.json().get("items", []):
                    video_id = item.get("id", {}).get("videoId")
                    if not video_id or video_id in seen:
                        continue
                    seen.add(video_id)
                    videos.append(self._to_recommendation(video_id, item.get("snippet", {}), keyword))

            return videos[:limit]
        finally:
            if self._client is None:
                client.close()

    @staticmethod
    def _to_recommendation(video_id: str, snippet: dict, keyword: str) -> VideoRecommendation:
        thumbnails = snippet.get("thumbnails", {})
        thumbnail = (thumbnails.get("medium") or thumbnails.get("default") or {}).get("url")
        return VideoRecommendation(
            video_id=video_id,
            title=snippet.get("title", ""),
            url=f"https://www.youtube.com/watch?v={video_id}",
            description=snippet.get("description", ""),
            thumbnail=thumbnail,
            channel_title=snippet.get("channelTitle"),
            published_at=snippet.get("publishedAt"),
            keyword=keyword,
        )


class SearchLinkSource(RecommendationSource):
    """Offline fallback: one YouTube search link per keyword."""

    name = "search_links"

    def search(self, keywords: Sequence[str], limit: int) -> List[VideoRecommendation]:
        return [
            VideoRecommendation(
                video_id=f"search_{i}",
                title=f"{keyword.title()} - tutorials",
                url=f"https://www.youtube.com/results?search_query={quote_plus(keyword + ' tutorial')}",
                description=f"Search results for educational videos about {keyword}.",
                keyword=keyword,
                is_fallback=True,
            )
            for i, keyword in enumerate(list(keywords)[:limit])
        ]


class VideoRecommender:
    """Runs the source chain for a page of text."""

    def __init__(
        self,
        sources: Optional[Sequence[RecommendationSource]] = None,
        timeout: Optional[float] = None,
        max_results: Optional[int] = None
    ):
        self.sources = list(sources) if sources is not None else [YouTubeApiSource(), SearchLinkSource()]
        self.timeout = timeout or rag_config.RECOMMENDATION_TIMEOUT
        self.max_results = max_results or rag_config.MAX_RECOMMENDATIONS

    def recommend(self, text: str) -> RecommendationResult:
        if not text or not is_educational(text):
            return RecommendationResult(message=Messages.NO_RECOMMENDATIONS)

        keywords = extract_keywords(text)
        if not keywords:
            return RecommendationResult(message=Messages.NO_RECOMMENDATIONS)

        logger.info(f"Searching videos for keywords: {keywords}")

        for source in self.sources:
            try:
                videos = call_with_deadline(
                    source.search, keywords, self.max_results,
                    timeout=self.timeout, service=source.name,
                )
            except Exception as e:
                # Recommendations never break the study flow
                logger.warning(f"Recommendation source {source.name} failed: {e}")
                continue

            if videos:
                logger.info(f"Found {len(videos)} videos via {source.name}")
                return RecommendationResult(
                    keywords=keywords,
                    recommendations=videos[:self.max_results],
                    source=source.name,
                )

        return RecommendationResult(keywords=keywords, message=Messages.NO_RECOMMENDATIONS)
