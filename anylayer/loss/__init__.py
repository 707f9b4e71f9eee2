from .CrossEntropyLoss import CrossEntropyLoss

__all__ = ["CrossEntropyLoss"]
