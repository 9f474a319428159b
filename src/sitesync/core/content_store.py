"""
Content store interface for reading and writing site content.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import ContentRecord, MenuDefinition, MenuItem


class ContentStore(ABC):
    """
    Abstract base class for content stores.

    A content store is the site's data layer: posts and their metadata,
    options, navigation menus and menu locations. Records are returned
    with raw (possibly PHP-serialized) meta and option values; decoding is
    left to the serializer and importer.
    """

    @abstractmethod
    def list_posts(
        self,
        post_types: List[str],
        limit: Optional[int] = None,
        offset: int = 0,
        statuses: Optional[List[str]] = None,
    ) -> List[ContentRecord]:
        """
        Get posts of the given types in a stable order.

        Args:
            post_types: Post types to include
            limit: Maximum number of records (None for all)
            offset: Number of records to skip
            statuses: Restrict to these statuses (None for any)

        Returns:
            List of content records, with meta loaded
        """
        pass

    @abstractmethod
    def count_posts(self, post_types: List[str]) -> int:
        """Count posts of the given types across all statuses."""
        pass

    @abstractmethod
    def get_post(self, post_id: int) -> Optional[ContentRecord]:
        """Get a post by id, or None."""
        pass

    @abstractmethod
    def find_post_by_path(self, post_type: str, path: str) -> Optional[ContentRecord]:
        """Find a post by its full hierarchical path within a type."""
        pass

    @abstractmethod
    def find_post_by_slug(
        self,
        post_type: str,
        slug: str,
        parent_id: Optional[int] = None,
    ) -> Optional[ContentRecord]:
        """Find a post by slug within a type, optionally under a parent."""
        pass

    @abstractmethod
    def find_post_by_title(self, post_type: str, title: str) -> Optional[ContentRecord]:
        """Find a post by exact title within a type."""
        pass

    @abstractmethod
    def insert_post(self, record: ContentRecord) -> int:
        """
        Insert a new post.

        Returns:
            The new post id
        """
        pass

    @abstractmethod
    def update_post(self, record: ContentRecord) -> None:
        """Update an existing post in place (record.id must be set)."""
        pass

    @abstractmethod
    def get_post_meta(self, post_id: int) -> Dict[str, List[str]]:
        """Get raw metadata for a post: key -> list of stored values."""
        pass

    @abstractmethod
    def set_post_meta(self, post_id: int, key: str, values: List[Any]) -> None:
        """Replace all values of a meta key for a post."""
        pass

    @abstractmethod
    def load_options(self) -> Dict[str, str]:
        """Get all options as raw stored values."""
        pass

    @abstractmethod
    def get_option(self, name: str, default: Any = None) -> Any:
        """Get a single option value (decoded), or default."""
        pass

    @abstractmethod
    def update_option(self, name: str, value: Any) -> None:
        """Create or update an option."""
        pass

    @abstractmethod
    def list_menus(self) -> List[MenuDefinition]:
        """Get all navigation menus with their items and locations."""
        pass

    @abstractmethod
    def find_menu_by_slug(self, slug: str) -> Optional[MenuDefinition]:
        """Find a navigation menu by slug."""
        pass

    @abstractmethod
    def create_menu(self, name: str, slug: Optional[str] = None) -> int:
        """Create a navigation menu and return its id."""
        pass

    @abstractmethod
    def clear_menu_items(self, menu_id: int) -> int:
        """Delete every item of a menu; returns the number removed."""
        pass

    @abstractmethod
    def add_menu_item(self, menu_id: int, item: MenuItem, parent_item_id: int = 0) -> int:
        """Append an item to a menu and return the item id."""
        pass

    @abstractmethod
    def get_menu_locations(self) -> Dict[str, int]:
        """Get theme location -> menu id assignments."""
        pass

    @abstractmethod
    def set_menu_locations(self, locations: Dict[str, int]) -> None:
        """Replace theme location assignments."""
        pass

    def close(self) -> None:
        """Close any open resources. Optional."""
        pass
