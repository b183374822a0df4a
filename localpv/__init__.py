"""Local persistent-volume StorageClass building, disk-manager configuration and cluster access."""

__version__ = "0.1.0"

__all__ = ["builder", "client", "kubeclient", "logger", "ndmconfig", "storageclass"]