"""imagevol: provision block-storage volumes from machine-image manifests."""

__version__ = "0.1.0"
