"""
Issue repositories.

Components receive a repository object explicitly instead of reaching for a
global Firestore handle, so the in-memory implementation can stand in for
Firestore in tests and in USE_MOCK_DB mode.
"""

from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging
import uuid

from civictrack.models.issue import TERMINAL_STATUSES, Issue

logger = logging.getLogger(__name__)

# Firestore batches are limited to 500 writes
BATCH_SIZE = 500


class IssueRepository(ABC):

    @abstractmethod
    def get(self, issue_id: str) -> Optional[Issue]:
        pass

    @abstractmethod
    def list_all(self) -> List[Issue]:
        pass

    @abstractmethod
    def list_by_user(self, uid: str) -> List[Issue]:
        pass

    @abstractmethod
    def list_active(self) -> List[Issue]:
        """Issues whose status is not terminal."""
        pass

    @abstractmethod
    def add(self, fields: Dict[str, Any]) -> str:
        """Create a new issue document and return its id."""
        pass

    @abstractmethod
    def update(self, issue_id: str, fields: Dict[str, Any]) -> None:
        pass

    def update_many(self, updates: Iterable[Tuple[str, Dict[str, Any]]]) -> int:
        count = 0
        for issue_id, fields in updates:
            self.update(issue_id, fields)
            count += 1
        return count


class FirestoreIssueRepository(IssueRepository):
    """Issues stored as documents of a Firestore collection."""

    def __init__(self, db, collection: str = "issues"):
        self.db = db
        self.collection = collection

    def _ref(self):
        return self.db.collection(self.collection)

    def _to_issues(self, docs) -> List[Issue]:
        issues = []
        for doc in docs:
            try:
                issues.append(Issue.from_document(doc.id, doc.to_dict() or {}))
            except Exception as e:
                logger.warning(f"Skipping malformed issue document {doc.id}: {e}")
        return issues

    def get(self, issue_id: str) -> Optional[Issue]:
        doc = self._ref().document(issue_id).get()
        if not doc.exists:
            return None
        return Issue.from_document(doc.id, doc.to_dict() or {})

    def list_all(self) -> List[Issue]:
        return self._to_issues(self._ref().stream())

    def list_by_user(self, uid: str) -> List[Issue]:
        # No orderBy here: combining it with the uid filter needs a composite index
        return self._to_issues(self._ref().where("uid", "==", uid).stream())

    def list_active(self) -> List[Issue]:
        # not-in also matches legacy spellings such as in_progress; the model's
        # status normalisation makes the final call
        terminal = [status.value for status in TERMINAL_STATUSES]
        issues = self._to_issues(self._ref().where("status", "not-in", terminal).stream())
        return [issue for issue in issues if not issue.is_terminal]

    def add(self, fields: Dict[str, Any]) -> str:
        doc_ref = self._ref().document()
        doc_ref.set(fields)
        return doc_ref.id

    def update(self, issue_id: str, fields: Dict[str, Any]) -> None:
        self._ref().document(issue_id).update(fields)

    def update_many(self, updates: Iterable[Tuple[str, Dict[str, Any]]]) -> int:
        batch = self.db.batch()
        pending = 0
        total = 0
        for issue_id, fields in updates:
            batch.update(self._ref().document(issue_id), fields)
            pending += 1
            total += 1
            if pending >= BATCH_SIZE:
                batch.commit()
                batch = self.db.batch()
                pending = 0
        if pending:
            batch.commit()
        return total


class InMemoryIssueRepository(IssueRepository):
    """Dict-backed repository. Documents are copied in and out."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None):
        self.documents: Dict[str, Dict[str, Any]] = deepcopy(documents) if documents else {}

    def get(self, issue_id: str) -> Optional[Issue]:
        data = self.documents.get(issue_id)
        if data is None:
            return None
        return Issue.from_document(issue_id, deepcopy(data))

    def list_all(self) -> List[Issue]:
        return [Issue.from_document(doc_id, deepcopy(data)) for doc_id, data in self.documents.items()]

    def list_by_user(self, uid: str) -> List[Issue]:
        return [issue for issue in self.list_all() if issue.uid == uid]

    def list_active(self) -> List[Issue]:
        return [issue for issue in self.list_all() if not issue.is_terminal]

    def add(self, fields: Dict[str, Any]) -> str:
        issue_id = uuid.uuid4().hex[:20]
        self.documents[issue_id] = deepcopy(fields)
        return issue_id

    def update(self, issue_id: str, fields: Dict[str, Any]) -> None:
        if issue_id not in self.documents:
            raise KeyError(f"Issue {issue_id} not found")
        self.documents[issue_id].update(deepcopy(fields))
