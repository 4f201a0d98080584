"""Revisioning of sqlalchemy model objects into audit tables.

Notes
=====

The listener is driven by the session at four points of a flush plus a reset:

  * on_flush (before_flush): the revision is reset, deleted objects get their
    DEL row straight away (their data and ids are all known) and inserted or
    updated objects are noted for the post flush pass.
  * post_persist (after_insert): INS row, written once the INSERT has
    assigned the primary key.
  * post_update (after_update): UPD row, unless only ignored columns changed.
  * post_flush (after_flush): rows written during the flush are patched with
    values only known at the end of it (e.g. foreign keys written by a
    post_update UPDATE), and deferred many-to-many rows are written.
  * on_clear (after_soft_rollback, or explicitly): everything pending is
    forgotten so nothing stale is written by a later flush.

Why not do everything in after_flush (as the sqlalchemy versioning example
does with before_flush)? Because in before_flush pks will not be set on
objects which have values autoset (e.g. int autoincrement), and by the end of
the flush we no longer know in which order rows were written. Doing INS/UPD
in the mapper events keeps audit rows in step with the writes they mirror.
"""
import logging
logger = logging.getLogger('revaudit')

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import class_mapper, object_session

from revaudit.changeset import ChangeType
from .exc import MetadataResolutionError
from .revision import RevisionAllocator
from .sql import RevisionSQL, make_update_statement
from .sqla import SQLAlchemySession, get_identifier, get_object_id
from .writer import AuditWriter


def _first(*sequences):
    for seq in sequences:
        if seq:
            return seq[0]
    return None


class RevisionListener:
    '''Write audit rows for every audited object changed in a flush.

    One listener serves one flush at a time: the revision id and the pending
    queues are plain instance state.
    '''

    def __init__(self, config, metadata_factory):
        self.config = config
        self.metadata_factory = metadata_factory
        self.revisions = RevisionAllocator(config)
        self.sql = RevisionSQL(config, metadata_factory)
        self.writer = AuditWriter(metadata_factory, self.revisions, self.sql)
        self.extra_updates = {}

    @property
    def deferred(self):
        return self.writer.deferred

    def listen(self, session):
        '''Attach the hooks to a Session class, sessionmaker or
        scoped_session and to the mappers of the audited classes.'''
        event.listen(session, 'before_flush', self.on_flush)
        event.listen(session, 'after_flush', self.post_flush)
        event.listen(session, 'after_soft_rollback', self.on_clear)
        for class_ in self.metadata_factory.audited_classes:
            event.listen(class_, 'after_insert', self.post_persist)
            event.listen(class_, 'after_update', self.post_update)

    def _audited_metadata(self, instance):
        if not self.metadata_factory.is_audited(type(instance)):
            return None
        return self.metadata_factory.get_class_metadata(type(instance))

    ## --------------------------------------------------------
    ## Hooks

    def on_flush(self, session, flush_context=None, instances=None):
        self.revisions.reset(SQLAlchemySession.get_author(session))
        self.writer.written = set()
        if SQLAlchemySession.revisioning_disabled(session):
            return

        processed = set()
        for instance in list(session.deleted):
            # the session is fine deleting an object several times. We are not.
            object_id = get_object_id(instance)
            if object_id in processed:
                continue
            processed.add(object_id)

            meta = self._audited_metadata(instance)
            if meta is None:
                continue
            entity_data = self.original_entity_data(instance, meta)
            entity_data.update(self.association_data(instance, meta,
                load=True, to_one=False))
            connection = session.connection(
                    bind_arguments={'mapper': class_mapper(type(instance))})
            logger.debug('on_flush: deleting %s' % instance)
            self.writer.save_revision_entity_data(connection, meta,
                    entity_data, ChangeType.DELETE)

        for instance in session.new:
            meta = self._audited_metadata(instance)
            if meta is None:
                continue
            self.association_data(instance, meta, load=True)
            self.extra_updates[id(instance)] = instance

        for instance in session.dirty:
            meta = self._audited_metadata(instance)
            if meta is None or not session.is_modified(instance):
                continue
            self._load_fields(instance, meta)
            self.association_data(instance, meta, load=True)
            self.extra_updates[id(instance)] = instance

    def post_persist(self, mapper, connection, instance):
        meta = self._audited_metadata(instance)
        if meta is None or SQLAlchemySession.revisioning_disabled(
                object_session(instance)):
            return
        entity_data = self.current_entity_data(instance, meta, connection)
        logger.debug('post_persist: %s' % instance)
        self.writer.save_revision_entity_data(connection, meta, entity_data,
                ChangeType.INSERT)

    def post_update(self, mapper, connection, instance):
        meta = self._audited_metadata(instance)
        if meta is None or SQLAlchemySession.revisioning_disabled(
                object_session(instance)):
            return
        changeset = self.entity_change_set(instance, meta)
        ignored = set(self.config.global_ignore_columns)
        for key in list(changeset):
            field = meta.get_field(key)
            if key in ignored or (field is not None and field.column in ignored):
                del changeset[key]
        if not changeset:
            logger.debug('post_update: no audited change on %s' % instance)
            return
        entity_data = self.current_entity_data(instance, meta, connection)
        logger.debug('post_update: %s changed %s' % (instance,
            sorted(changeset)))
        self.writer.save_revision_entity_data(connection, meta, entity_data,
                ChangeType.UPDATE)

    def post_flush(self, session, flush_context=None):
        try:
            if SQLAlchemySession.revisioning_disabled(session):
                return
            connection = session.connection()
            if self.revisions.revision_id is not None:
                for instance in self.extra_updates.values():
                    self.apply_extra_update(connection, instance)
            self.writer.flush_deferred(connection)
        finally:
            self.extra_updates = {}
            self.writer.clear()
            self.revisions.reset()

    def on_clear(self, session=None, previous_transaction=None):
        if self.extra_updates or self.writer.deferred:
            logger.debug('on_clear: dropping %s pending updates and %s '
                'deferred association rows' % (len(self.extra_updates),
                    len(self.writer.deferred)))
        self.extra_updates = {}
        self.writer.clear()
        self.revisions.reset()

    ## --------------------------------------------------------
    ## Object data

    def _load_fields(self, instance, class_metadata):
        # expired object attributes and also deferred cols might not be in the
        # dict.  force them to load while the session may still emit SQL.
        unloaded = inspect(instance).unloaded
        for field in class_metadata.fields:
            if field.name in unloaded:
                getattr(instance, field.name)

    def original_entity_data(self, instance, class_metadata):
        '''Last known (committed) values of the object's fields.'''
        self._load_fields(instance, class_metadata)
        state = inspect(instance)
        data = {}
        for field in class_metadata.fields:
            hist = state.attrs[field.name].history
            data[field.name] = _first(hist.deleted, hist.unchanged,
                    hist.added)
        if class_metadata.discriminator_column is not None:
            data[class_metadata.discriminator_column] = \
                    state.mapper.polymorphic_identity
        return data

    def current_entity_data(self, instance, class_metadata, connection=None):
        '''Values as just written, plus the owning associations.

        :param connection: when given, fields the flush left unloaded
            (``onupdate`` expressions, server defaults) are read back
            through it.
        '''
        state = inspect(instance)
        data = {}
        for field in class_metadata.fields:
            data[field.name] = state.dict.get(field.name)
        if connection is not None:
            data.update(self.unloaded_entity_data(connection, instance,
                class_metadata))
        if class_metadata.discriminator_column is not None:
            data[class_metadata.discriminator_column] = \
                    state.mapper.polymorphic_identity
        data.update(self.association_data(instance, class_metadata))
        return data

    def unloaded_entity_data(self, connection, instance, class_metadata):
        '''Current database values of the fields missing from the object's
        dict, selected by primary key table by table.'''
        state = inspect(instance)
        unloaded = state.unloaded
        by_table = {}
        for field in class_metadata.fields:
            if field.name in unloaded:
                by_table.setdefault(field.table_name, []).append(field)
        if not by_table:
            return {}

        ids = get_identifier(instance)
        data = {}
        for table in state.mapper.tables:
            fields = by_table.get(table.name)
            if not fields:
                continue
            query = select(*[table.c[field.column] for field in fields])
            for col in table.primary_key.columns:
                key = state.mapper.get_property_by_column(col).key
                query = query.where(col == ids[key])
            row = connection.execute(query).first()
            if row is None:
                continue
            for field, value in zip(fields, row):
                data[field.name] = value
        logger.debug('Read back %s for %s' % (sorted(data), instance))
        return data

    def association_data(self, instance, class_metadata, load=False,
            to_one=True):
        '''Owning associations of the object.

        Many-to-many collections are snapshotted as lists. With load=True
        unloaded collections are loaded first, which must only happen while
        the session may emit SQL (i.e. before the flush).
        '''
        state = inspect(instance)
        data = {}
        for assoc in class_metadata.associations:
            if assoc.is_many_to_many_owning_side:
                if assoc.name not in state.dict and load:
                    getattr(instance, assoc.name)
                if assoc.name in state.dict:
                    collection = state.dict[assoc.name]
                    data[assoc.name] = None if collection is None \
                            else list(collection)
            elif assoc.is_to_one_owning_side and to_one:
                if assoc.name in state.dict:
                    data[assoc.name] = state.dict[assoc.name]
        return data

    def entity_change_set(self, instance, class_metadata):
        '''{attribute name: (old value, new value)} for changed fields and
        owning associations.'''
        state = inspect(instance)
        changeset = {}
        for field in class_metadata.fields:
            if field.name == class_metadata.version_field:
                continue
            hist = state.attrs[field.name].history
            if hist.has_changes():
                changeset[field.name] = (_first(hist.deleted),
                        _first(hist.added))
        for assoc in class_metadata.associations:
            if not assoc.owning_side:
                continue
            hist = state.attrs[assoc.name].history
            if hist.has_changes():
                changeset[assoc.name] = (list(hist.deleted), list(hist.added))
        return changeset

    ## --------------------------------------------------------
    ## Extra updates

    def prepare_update_data(self, instance, class_metadata):
        '''Changed columns of the object grouped by owning table.

        Based on what the unit of work itself writes: changed fields go to
        the table their column lives in, and a changed to-one association
        sets its foreign key columns from the related object's identifier.
        '''
        state = inspect(instance)
        result = {}
        for field in class_metadata.fields:
            if field.name == class_metadata.version_field:
                continue
            hist = state.attrs[field.name].history
            if not hist.has_changes():
                continue
            result.setdefault(field.table_name, {})[field.column] = \
                    _first(hist.added)

        for assoc in class_metadata.associations:
            if not assoc.is_to_one_owning_side:
                continue
            hist = state.attrs[assoc.name].history
            if not hist.has_changes():
                continue
            new_value = _first(hist.added)
            new_id = None
            if new_value is not None:
                new_id = get_identifier(new_value)
                if None in new_id.values():
                    # not written in this flush: nothing to patch with
                    continue
            target = self.metadata_factory.get_class_metadata(
                    assoc.target_class)
            for source_column, target_column in assoc.join_columns:
                field = class_metadata.field_for_column(source_column)
                owning_table = class_metadata.table_name if field is None \
                        else field.table_name
                value = None
                if new_id is not None:
                    value = new_id.get(
                            target.field_for_column(target_column).name)
                result.setdefault(owning_table, {})[source_column] = value
        return result

    def apply_extra_update(self, connection, instance):
        meta = self.metadata_factory.get_class_metadata(type(instance))
        update_data = self.prepare_update_data(instance, meta)
        columns = update_data.get(meta.table_name)
        if not columns:
            return

        values = []
        for column, value in columns.items():
            type_ = self.metadata_factory.resolve_column_type(meta, column)
            values.append((column, type_, value))

        ids = get_identifier(instance)
        identifier = []
        for name in meta.identifier:
            field = meta.get_field(name)
            if field is None:
                raise MetadataResolutionError(
                        'Column name not found for identifier %s of %s' % (
                            name, meta.name))
            identifier.append((field.column, field.type, ids.get(name)))

        statement, params = make_update_statement(self.config,
                self.config.get_table_name(meta),
                self.revisions.get_revision_id(connection),
                values, identifier, connection.dialect)
        logger.debug('Extra update of %s: %s' % (instance, params))
        connection.execute(statement, params)
