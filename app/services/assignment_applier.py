"""
Assignment applier - grants resolved collections into user.assigned_collections
"""
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from app.services.entity_store import EntityStore
from app.utils.dates import isoformat
from app.utils.scheduler import Clock, Scheduler, ScheduledHandle

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION_IMAGE = "/images/sample.jpg"
QUIZ_ASSIGNMENT_TAG = "quiz-assignment"


def snapshot_collection(collection: Any) -> Dict[str, Any]:
    """Denormalised copy taken at grant time, survives later edits/deletion"""
    return {
        "collection_id": str(collection.id),
        "name": collection.name,
        "description": collection.description or "",
        "image": collection.image or DEFAULT_COLLECTION_IMAGE,
        "display_order": collection.display_order or 0,
        "is_public": bool(collection.is_public),
    }


class AssignmentApplier:
    """
    Grants collections immediately or after a delay

    Strategy:
    - delay <= 0: applied synchronously; errors reach the caller
    - delay > 0: a timer fires later, re-reads the user in a fresh session and
      applies; errors are logged, never retried (at-most-once)

    The re-read narrows, but does not close, the race with concurrent writes
    to the same user row.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        scheduler: Scheduler,
        clock: Clock,
    ):
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.clock = clock

    def apply_assignments(
        self,
        store: EntityStore,
        user_id: Any,
        collections: Dict[str, Any],
        quiz_name: str,
        delay_seconds: float,
    ) -> Optional[ScheduledHandle]:
        """
        Grant `collections` to the user on their own behalf

        Returns:
            The timer handle for a deferred grant, None when applied immediately
        """
        snapshots = [snapshot_collection(c) for c in collections.values()]

        if not delay_seconds or delay_seconds <= 0:
            logger.info(f"Immediate assignment of {len(snapshots)} collections from quiz '{quiz_name}'")
            self._apply(store, user_id, snapshots, quiz_name)
            return None

        due_at = self.clock.now() + timedelta(seconds=delay_seconds)
        logger.info(
            f"Deferred assignment of {len(snapshots)} collections from quiz '{quiz_name}' "
            f"in {delay_seconds}s (at {due_at.isoformat()})"
        )
        return self.scheduler.after(
            delay_seconds,
            lambda: self._run_deferred(user_id, snapshots, quiz_name),
        )

    def _run_deferred(self, user_id: Any, snapshots: List[Dict[str, Any]], quiz_name: str) -> None:
        db = self.session_factory()
        try:
            self._apply(EntityStore(db), user_id, snapshots, quiz_name)
        except Exception as e:
            logger.error(f"Deferred quiz assignment failed for user {user_id}: {str(e)}", exc_info=True)
            db.rollback()
        finally:
            db.close()

    def _apply(
        self,
        store: EntityStore,
        user_id: Any,
        snapshots: List[Dict[str, Any]],
        quiz_name: str,
    ) -> int:
        # Fresh read right before the mutation
        user = store.find_user_by_id(user_id, refresh=True)
        if user is None:
            logger.warning(f"Assignment skipped: user {user_id} not found")
            return 0

        assigned = list(user.assigned_collections or [])
        existing_ids = {str(entry.get("collection_id")) for entry in assigned}
        now = isoformat(self.clock.now())

        added = 0
        for snapshot in snapshots:
            if snapshot["collection_id"] in existing_ids:
                logger.info(f"Collection '{snapshot['name']}' already assigned to {user.email}, skipping")
                continue
            assigned.append({
                **snapshot,
                "assigned_at": now,
                "assigned_by": str(user.id),
                "last_accessed_at": None,
                "access_count": 0,
                "notes": f"Assigned via quiz: {quiz_name}",
                "status": "active",
                "tags": [QUIZ_ASSIGNMENT_TAG],
            })
            existing_ids.add(snapshot["collection_id"])
            added += 1
            logger.info(f"Collection '{snapshot['name']}' assigned to {user.email}")

        if added:
            user.assigned_collections = assigned
            store.save_user(user, "assigned_collections")
            logger.info(f"{added} collections assigned to {user.email} from quiz '{quiz_name}'")
        else:
            logger.info(f"No new collections to assign to {user.email}")
        return added
