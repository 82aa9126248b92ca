from .async_utils import maybe_await
from .url_utils import build_ws_url

__all__ = ["build_ws_url", "maybe_await"]
