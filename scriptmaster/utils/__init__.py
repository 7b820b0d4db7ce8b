from .gemini_client import generate_image, generate_json, generate_text, make_client

__all__ = ["generate_image", "generate_json", "generate_text", "make_client"]
