from datetime import datetime

import pytest

from revaudit.sqlalchemy import AuditConfiguration, RevisionAllocationError
from revaudit.sqlalchemy.revision import RevisionAllocator


class StubResult:
    def __init__(self, inserted_primary_key):
        self.inserted_primary_key = inserted_primary_key


class StubConnection:
    '''Records statements and answers every INSERT with the next id.'''

    def __init__(self, ids):
        self.ids = list(ids)
        self.statements = []

    def execute(self, statement, *args):
        self.statements.append(statement)
        return StubResult(self.ids.pop(0))


class TestRevisionAllocator:

    @classmethod
    def setup_class(self):
        self.when = datetime(2011, 3, 4, 5, 6)
        self.config = AuditConfiguration(username_callable=lambda: 'tester',
                clock=lambda: self.when)

    def test_one_revision_until_reset(self):
        allocator = RevisionAllocator(self.config)
        conn = StubConnection([(7,), (8,)])
        assert allocator.get_revision_id(conn) == 7
        assert allocator.get_revision_id(conn) == 7
        assert len(conn.statements) == 1
        allocator.reset()
        assert allocator.revision_id is None
        assert allocator.get_revision_id(conn) == 8
        assert len(conn.statements) == 2

    def test_revision_row(self):
        allocator = RevisionAllocator(self.config)
        conn = StubConnection([(1,)])
        allocator.get_revision_id(conn)
        params = conn.statements[0].compile().params
        assert params['timestamp'] == self.when
        assert params['username'] == 'tester'
        assert conn.statements[0].table.name == 'revisions'

    def test_author_wins(self):
        allocator = RevisionAllocator(self.config)
        allocator.reset(author='alice')
        conn = StubConnection([(1,)])
        allocator.get_revision_id(conn)
        assert conn.statements[0].compile().params['username'] == 'alice'

    def test_no_id(self):
        allocator = RevisionAllocator(self.config)
        with pytest.raises(RevisionAllocationError):
            allocator.get_revision_id(StubConnection([None]))
        with pytest.raises(RevisionAllocationError):
            allocator.get_revision_id(StubConnection([(None,)]))
        assert allocator.revision_id is None
