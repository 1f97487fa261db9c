import re
from typing import Iterable, List, Optional

# Keywords this short only count as whole tokens ("ad" must not match "header")
SHORT_KEYWORD_LENGTH = 3

_WHITESPACE_RE = re.compile(r"\s+")


class TextProcessor:
    """Keyword matching and small text helpers shared by the extraction pipeline"""

    def clean_text(self, text: str) -> str:
        """Strip tags and collapse whitespace"""
        if not text:
            return ""

        text = re.sub(r"<[^>]+>", " ", text)
        return _WHITESPACE_RE.sub(" ", text).strip()

    def contains_keyword(self, text: str, keyword: str) -> bool:
        """Check a single keyword, using token boundaries for very short keywords"""
        if not text or not keyword:
            return False

        text_lower = text.lower()
        keyword = keyword.lower()

        if len(keyword) <= SHORT_KEYWORD_LENGTH:
            pattern = r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])"
            return re.search(pattern, text_lower) is not None

        return keyword in text_lower

    def contains_keywords(
        self, text: str, keywords: Iterable[str], min_matches: int = 1
    ) -> bool:
        """Check if text contains specified keywords"""
        if not text:
            return False

        matches = sum(1 for keyword in keywords if self.contains_keyword(text, keyword))
        return matches >= min_matches

    def first_keyword(self, text: str, keywords: Iterable[str]) -> Optional[str]:
        """Return the first keyword present in text, if any"""
        for keyword in keywords:
            if self.contains_keyword(text, keyword):
                return keyword
        return None

    def word_tokens(self, text: str) -> List[str]:
        """Lowercased whitespace tokens"""
        if not text:
            return []
        return [token for token in _WHITESPACE_RE.split(text.lower()) if token]

    def text_similarity(self, text1: str, text2: str) -> float:
        """Jaccard similarity over whitespace-tokenized words"""
        if not text1 or not text2:
            return 0.0

        words1 = set(self.word_tokens(text1))
        words2 = set(self.word_tokens(text2))

        if not words1 or not words2:
            return 0.0

        intersection = words1.intersection(words2)
        union = words1.union(words2)

        return len(intersection) / len(union) if union else 0.0

    def slugify(self, text: str) -> str:
        """URL slug from a title"""
        slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower())
        return slug.strip("-")

    def truncate(self, text: str, limit: int, marker: str) -> str:
        """Cut text to limit characters, appending marker when something was removed"""
        if len(text) <= limit:
            return text
        return text[:limit] + marker
