"""adaptimg: responsive image build pipeline and delivery runtime."""

from adaptimg.version import __version__

__all__ = ["__version__"]
