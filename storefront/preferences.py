import logging

from storefront.storage import KeyValueStore

logger = logging.getLogger("storefront.preferences")

DARK = "dark"
LIGHT = "light"

class ThemePreference:
    def __init__(self, storage: KeyValueStore, storage_key: str = "digistore_theme"):
        self.storage = storage
        self.storage_key = storage_key
        self.is_dark = False

    def load(self) -> bool:
        self.is_dark = self.storage.get(self.storage_key) == DARK
        return self.is_dark

    @property
    def theme(self) -> str:
        return DARK if self.is_dark else LIGHT

    def toggle(self) -> str:
        self.is_dark = not self.is_dark
        try:
            self.storage.set(self.storage_key, self.theme)
        except OSError:
            logger.error("Failed to persist theme preference", exc_info=True)
        return self.theme
