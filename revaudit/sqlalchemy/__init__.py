'''SQLAlchemy audit extension.

For general information about revision audit tables see the root revaudit
package docstring.

Implementation Notes
====================

The session is the unit of work we observe: one flush is one revision. The
listener only ever writes to audit tables through the connection of the flush
it observes, so audit rows commit or roll back with the data they describe.

Some useful links:

http://www.sqlalchemy.org/docs/orm/session_events.html
http://www.sqlalchemy.org/docs/orm/events.html#mapper-events
http://www.sqlalchemy.org/trac/browser/examples/versioned_history
'''
from .base import make_revision_table, make_audit_table, make_audit_tables
from .config import AuditConfiguration
from .exc import AuditError, MetadataResolutionError, RevisionAllocationError
from .listener import RevisionListener
from .metadata import MetadataFactory, ClassMetadata, InheritanceType
from .sqla import SQLAlchemyMixin, SQLAlchemySession
from .tools import Repository
