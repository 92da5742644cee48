import html

# --- Input Sanitization ---
def sanitize_input(text: str) -> str:
    """
    Sanitize input string:
    - HTML escape
    - Strip whitespace
    """
    if not isinstance(text, str):
        return text

    # Strip whitespace
    clean_text = text.strip()

    # HTML Escape
    clean_text = html.escape(clean_text)

    return clean_text

def is_safe_image_url(url: str) -> bool:
    """
    Product images must be served over http(s); data: and javascript: URLs
    are refused before they reach the catalog.
    """
    if not isinstance(url, str):
        return False
    return url.strip().lower().startswith(("https://", "http://"))
