"""Slug generator service.

Generates URL-friendly item slugs from titles and tag names.
"""

import re
import unicodedata


class SlugGenerator:
    """Generate and validate URL-friendly slugs.

    Slug rules:
    - Alphanumeric + hyphens only
    - Lowercase
    - At most 96 characters
    """

    MAX_LENGTH = 96

    # Regex for valid slug format
    VALID_SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

    @classmethod
    def generate(cls, text: str, fallback: str = "item") -> str:
        """Generate a slug from text.

        Args:
            text: The text to convert to a slug (e.g., an item title).
            fallback: Slug returned when nothing usable is left.

        Returns:
            URL-friendly slug.

        Examples:
            >>> SlugGenerator.generate("Hello World")
            'hello-world'
            >>> SlugGenerator.generate("Café & Crème, 2024!")
            'cafe-creme-2024'
        """
        # Normalize unicode characters
        normalized = unicodedata.normalize("NFKD", str(text or ""))
        # Remove non-ASCII characters
        ascii_text = normalized.encode("ascii", "ignore").decode("ascii")

        slug = ascii_text.lower()

        # Replace spaces and special characters with hyphens
        slug = re.sub(r"[^a-z0-9]+", "-", slug)
        slug = re.sub(r"-+", "-", slug).strip("-")

        if len(slug) > cls.MAX_LENGTH:
            slug = slug[: cls.MAX_LENGTH].rstrip("-")

        return slug or fallback

    @classmethod
    def is_valid(cls, slug: str) -> bool:
        """Check if a slug is valid.

        Args:
            slug: The slug to validate.

        Returns:
            True if slug meets all requirements, False otherwise.
        """
        return (
            isinstance(slug, str)
            and len(slug) <= cls.MAX_LENGTH
            and cls.VALID_SLUG_PATTERN.match(slug) is not None
        )
