"""
    Category Manager for merchant aliases and the category vocabulary
"""

import json
import os
from typing import Dict, List, Optional, Tuple

from receipt_pipeline.config import DEFAULT_CATEGORY


class CategoryManager:
    """Manager for merchant/category lookups using merchants.json"""

    def __init__(self, taxonomy_file_path: Optional[str] = None):
        self.taxonomy_file_path = taxonomy_file_path or os.path.join(
            os.path.dirname(os.path.abspath(__file__)), "..", "data", "merchants.json"
        )
        self.taxonomy = self._load_taxonomy()
        self._merchant_categories = self._build_merchant_categories()

    def _load_taxonomy(self) -> Dict:
        """Load taxonomy from JSON file"""
        try:
            with open(self.taxonomy_file_path, 'r', encoding='utf-8') as f:
                return json.load(f)

        except (FileNotFoundError, json.JSONDecodeError) as e:
            raise ValueError("Failed to load merchant taxonomy") from e

    def _build_merchant_categories(self) -> Dict[str, str]:
        """Build flat mapping of canonical merchant -> category"""
        return {merchant["name"]: merchant["category"] for merchant in self.taxonomy["merchants"]}

    @property
    def default_category(self) -> str:
        return self.taxonomy.get("default_category", DEFAULT_CATEGORY)

    def get_all_categories(self) -> List[str]:
        """Get the category vocabulary (default included)"""
        categories = list(self.taxonomy["categories"])
        if self.default_category not in categories:
            categories.append(self.default_category)
        return categories

    def get_merchant_aliases(self) -> List[Tuple[str, List[str]]]:
        """Canonical merchant names with their lowercase aliases, in dictionary order"""
        return [
            (merchant["name"], [alias.lower() for alias in merchant["aliases"]])
            for merchant in self.taxonomy["merchants"]
        ]

    def get_category_for_merchant(self, merchant_name: str) -> Optional[str]:
        return self._merchant_categories.get(merchant_name)

    def get_category_from_keywords(self, text: str) -> Optional[str]:
        """First category whose keyword appears in the lowercased text"""
        text_lower = text.lower()
        for entry in self.taxonomy.get("keyword_categories", []):
            if any(keyword in text_lower for keyword in entry["keywords"]):
                return entry["category"]
        return None

    def is_valid_category(self, category: str) -> bool:
        return category in self.get_all_categories()


# Global instance
category_manager = CategoryManager()
