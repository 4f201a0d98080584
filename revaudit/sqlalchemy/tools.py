'''Various useful tools for working with audited domain models.

Primarily organized within a `Repository` object.
'''
import logging
logger = logging.getLogger('revaudit')

from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session

from .base import make_revision_table, make_audit_tables
from .config import AuditConfiguration
from .listener import RevisionListener
from .metadata import MetadataFactory


class Repository:
    '''Audit tables plus the listener wired to a session.

    NB: one `RevisionListener` serves every session made by our_session. Its
    revision id and pending queues belong to the flush in progress, so
    sessions in several threads must not flush concurrently: serialize the
    flushes (e.g. with a lock around commit) when sharing a scoped_session
    between threads.
    '''

    def __init__(self, our_metadata, our_session, audited_classes=(),
            config=None, dburi=None):
        '''
        @param our_metadata: MetaData holding the domain tables. Revision and
            audit tables are added to it.
        @param our_session: Session class, sessionmaker or scoped_session the
            listener is attached to.
        @param dburi: sqlalchemy dburi. If supplied will create engine and bind
            it to the session.
        '''
        self.metadata = our_metadata
        self.session = our_session
        self.dburi = dburi
        self.have_scoped_session = isinstance(self.session, scoped_session)
        self.config = config or AuditConfiguration()
        self.metadata_factory = MetadataFactory(audited_classes)
        self.revision_table = self.metadata.tables.get(
                self.config.revision_table_name)
        if self.revision_table is None:
            self.revision_table = make_revision_table(self.metadata,
                    self.config)
        self.audit_tables = make_audit_tables(self.metadata,
                self.metadata_factory, self.config)
        self.listener = RevisionListener(self.config, self.metadata_factory)
        self.listener.listen(self.session)
        self.engine = None
        if self.dburi:
            self.engine = create_engine(dburi)
            self.session.configure(bind=self.engine)

    def audit_table(self, class_):
        meta = self.metadata_factory.get_class_metadata(class_)
        return self.audit_tables[self.config.get_table_name(meta)]

    def join_audit_table(self, join_table_name):
        return self.audit_tables[
                self.config.get_join_table_name(join_table_name)]

    def rebuild_db(self):
        logger.info('Rebuilding DB')
        if self.have_scoped_session:
            self.session.remove()
        self.metadata.drop_all(bind=self.engine)
        self.metadata.create_all(bind=self.engine)

    def commit(self, remove=True):
        self.session.commit()
        if remove and self.have_scoped_session:
            self.session.remove()

    def clear(self):
        '''Detach every object from the session and drop pending audit work.'''
        self.session.expunge_all()
        self.listener.on_clear()
