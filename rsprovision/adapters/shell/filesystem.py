"""
Filesystem adapter — directory operations for the recipe.

Provides a receipt-returning interface for the directory steps the
engine can audit and dry-run: creating the build directory and
removing the temporary clone.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from rsprovision.adapters.base import Adapter, ExecutionContext
from rsprovision.core.models.action import Receipt

logger = logging.getLogger(__name__)


class FilesystemAdapter(Adapter):
    """Directory operations with receipts.

    Action params:
        operation (str): One of 'mkdir', 'remove', 'exists'.
        path (str): Target path (relative to working_dir or absolute).
    """

    VALID_OPS = frozenset({"mkdir", "remove", "exists"})

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.action.params.get("operation", "")
        if not operation:
            return False, "Missing required param: 'operation'"

        if operation not in self.VALID_OPS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(self.VALID_OPS))}"

        path = context.action.params.get("path", "")
        if not path:
            return False, "Missing required param: 'path'"

        if operation == "remove" and Path(path).resolve() == Path("/"):
            return False, "Refusing to remove '/'"

        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.action.params["operation"]
        raw_path = context.action.params["path"]

        target = Path(raw_path)
        if not target.is_absolute():
            target = Path(context.working_dir) / target

        try:
            if operation == "mkdir":
                return self._mkdir(context, target)
            elif operation == "remove":
                return self._remove(context, target)
            else:
                return self._exists(context, target)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Filesystem error: {e}",
                return_code=1,
                metadata={"operation": operation, "path": str(target)},
            )

    def _mkdir(self, ctx: ExecutionContext, target: Path) -> Receipt:
        target.mkdir(parents=True, exist_ok=True)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Directory ready: {target}",
            metadata={"path": str(target)},
        )

    def _remove(self, ctx: ExecutionContext, target: Path) -> Receipt:
        # rm -rf semantics: a missing target is not an error
        if not target.exists() and not target.is_symlink():
            return Receipt.success(
                adapter=self.name,
                action_id=ctx.action.id,
                output=f"Nothing to remove: {target}",
                metadata={"path": str(target), "removed": False},
            )
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
        logger.debug("Removed %s", target)
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=f"Removed {target}",
            metadata={"path": str(target), "removed": True},
        )

    def _exists(self, ctx: ExecutionContext, target: Path) -> Receipt:
        exists = target.exists()
        return Receipt.success(
            adapter=self.name,
            action_id=ctx.action.id,
            output=str(exists),
            metadata={"exists": exists, "is_dir": target.is_dir(), "path": str(target)},
        )
