"""Remote store: the spreadsheet web app holding every booking."""

from .client import SheetClient, SheetCommandError, SheetError

__all__ = ["SheetClient", "SheetCommandError", "SheetError"]
