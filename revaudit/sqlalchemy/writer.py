'''Writing audit rows and join audit rows.
'''
import logging
logger = logging.getLogger('revaudit')

from .sql import revision_columns
from .sqla import get_identifier, has_identifier


class DeferredAssociationWrite:
    '''A join audit row waiting for its related object to get an id.

    Collection membership is captured before the flush runs, but a related
    object that is itself pending only gets its id during that same flush.
    '''

    def __init__(self, entity, revision_type, entity_data, association,
            class_metadata, target_metadata):
        self.entity = entity
        self.revision_type = revision_type
        self.entity_data = entity_data
        self.association = association
        self.class_metadata = class_metadata
        self.target_metadata = target_metadata

    def __repr__(self):
        return '<DeferredAssociationWrite %s %s.%s>' % (self.revision_type,
                self.class_metadata.name, self.association.name)


class AuditWriter:
    '''Insert audit rows for the current revision.

    :param revisions: `RevisionAllocator` handing out the revision id.
    :param sql: `RevisionSQL` statement cache.
    '''

    def __init__(self, metadata_factory, revisions, sql):
        self.metadata_factory = metadata_factory
        self.revisions = revisions
        self.sql = sql
        self.deferred = []
        # (audit table, identifier) of rows written in the current revision,
        # (join audit table, sorted column values) for join rows
        self.written = set()

    def clear(self):
        self.deferred = []
        self.written = set()

    def save_revision_entity_data(self, connection, class_metadata,
            entity_data, revision_type):
        '''Write the audit row of one object.

        :param entity_data: values keyed by attribute name; to-one
            associations may be present as the related object and owning
            many-to-many associations as the collection.
        '''
        key = (self.sql.config.get_table_name(class_metadata),
                tuple(entity_data.get(name) for name in class_metadata.identifier))
        if key in self.written:
            # e.g. a post_update UPDATE of a row inserted in this flush; the
            # extra update pass brings the existing row up to date
            logger.debug('Already written %s row %s' % key)
            return
        self.written.add(key)

        params = [self.revisions.get_revision_id(connection), revision_type]

        for assoc in class_metadata.associations:
            if class_metadata.is_joined and assoc.inherited:
                continue
            if not assoc.is_many_to_many_owning_side:
                continue
            collection = entity_data.get(assoc.name)
            if collection is None:
                continue
            target = self.metadata_factory.get_class_metadata(
                    assoc.target_class)
            for related in collection:
                if not has_identifier(related):
                    # related object is inserted later in this flush
                    logger.debug('Deferring %s row for %s' % (
                        assoc.join_table_name, related))
                    self.deferred.append(DeferredAssociationWrite(related,
                        revision_type, entity_data, assoc, class_metadata,
                        target))
                else:
                    self.record_many_to_many(connection, related,
                            revision_type, entity_data, assoc,
                            class_metadata, target)

        for col in revision_columns(class_metadata, self.metadata_factory):
            params.append(self._column_value(class_metadata, col,
                entity_data))

        if class_metadata.is_joined and not class_metadata.is_root and \
                class_metadata.discriminator_column is not None:
            # the root table part of the object is a row of its own
            root_data = dict(entity_data)
            root_data[class_metadata.discriminator_column] = \
                    class_metadata.discriminator_value
            root = self.metadata_factory.get_class_metadata(
                    class_metadata.root_class)
            self.save_revision_entity_data(connection, root, root_data,
                    revision_type)

        template = self.sql.get_insert_revision_sql(class_metadata,
                connection.dialect)
        logger.debug('Creating %s row in %s: %s' % (revision_type,
            template.table_name, params))
        template.execute(connection, params)

    def _column_value(self, class_metadata, col, entity_data):
        if col.discriminator:
            return entity_data.get(col.name,
                    class_metadata.discriminator_value)
        if col.field is not None:
            return entity_data.get(col.field.name)
        assoc = col.association
        if assoc.name not in entity_data:
            # relation not loaded: fall back on the foreign key attribute
            field = class_metadata.field_for_column(col.name)
            if field is None:
                return None
            return entity_data.get(field.name)
        related = entity_data[assoc.name]
        if related is None:
            return None
        target = self.metadata_factory.get_class_metadata(assoc.target_class)
        target_field = target.field_for_column(col.target_column)
        return self._related_value(related, target_field)

    def _related_value(self, related, field):
        if field.identifier:
            return get_identifier(related).get(field.name)
        return getattr(related, field.name)

    def record_many_to_many(self, connection, related, revision_type,
            entity_data, assoc, class_metadata, target_metadata):
        '''Write the join audit row for (owner, related).'''
        template = self.sql.get_insert_join_table_revision_sql(
                class_metadata, target_metadata, assoc, connection.dialect)
        params = [self.revisions.get_revision_id(connection), revision_type]
        for join_column, source_column in assoc.relation_to_source:
            field = class_metadata.field_for_column(source_column)
            params.append(entity_data.get(field.name))
        for join_column, target_column in assoc.relation_to_target:
            field = target_metadata.field_for_column(target_column)
            params.append(self._related_value(related, field))
        # the same pair reached from both ends of the association
        key = (template.table_name,
                tuple(sorted(zip(template.columns[2:], params[2:]))))
        if key in self.written:
            logger.debug('Already written %s row %s' % key)
            return
        self.written.add(key)
        logger.debug('Creating %s row in %s: %s' % (revision_type,
            template.table_name, params))
        template.execute(connection, params)

    def flush_deferred(self, connection):
        '''Write every deferred join audit row, then forget them.'''
        deferred, self.deferred = self.deferred, []
        for item in deferred:
            self.record_many_to_many(connection, item.entity,
                    item.revision_type, item.entity_data, item.association,
                    item.class_metadata, item.target_metadata)
