"""Order fulfillment: runs the post-payment sale pipeline and notifies independent listeners."""

__version__ = "0.1.0"
