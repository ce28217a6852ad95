"""
Unit-of-work tests — audit stamping and translation of persistence
failures into domain conflicts.
"""

import pytest

from portfolio.core.exceptions import DuplicateEntryError
from portfolio.models import db
from portfolio.models.document import Document, Tag
from portfolio.services import unit_of_work


class TestAuditStamping:
    def test_created_by_from_actor(self, owner):
        doc = Document(title="Stamped", owner_id=owner.id)
        db.session.add(doc)
        unit_of_work.commit(owner.id)

        assert doc.created_by == owner.id
        assert doc.created_at is not None
        assert doc.updated_by is None

    def test_updated_by_on_change(self, owner, other):
        doc = Document(title="Stamped", owner_id=owner.id)
        db.session.add(doc)
        unit_of_work.commit(owner.id)

        doc.title = "Changed"
        unit_of_work.commit(other.id)
        assert doc.created_by == owner.id
        assert doc.updated_by == other.id
        assert doc.updated_at is not None

    def test_untouched_rows_not_stamped(self, owner):
        doc = Document(title="Quiet", owner_id=owner.id)
        db.session.add(doc)
        unit_of_work.commit(owner.id)

        assert unit_of_work.stamp_audit_fields(db.session, owner.id) == 0

    def test_flush_assigns_ids(self, owner):
        doc = Document(title="Early id", owner_id=owner.id)
        db.session.add(doc)
        unit_of_work.flush(owner.id)
        assert doc.id is not None
        assert doc.created_by == owner.id


class TestTranslation:
    def test_integrity_error_becomes_duplicate_entry(self):
        db.session.add(Tag(name="urgent"))
        unit_of_work.commit()

        db.session.add(Tag(name="urgent"))
        with pytest.raises(DuplicateEntryError) as exc:
            unit_of_work.commit()
        assert exc.value.code == "DUPLICATE_ENTRY"

        # the session was rolled back and is usable again
        db.session.add(Tag(name="later"))
        unit_of_work.commit()
        assert db.session.query(Tag).count() == 2
