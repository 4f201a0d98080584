'''SQL used to write audit rows.

INSERT statements are built once per audited class (and once per
many-to-many association) and cached. They are plain text statements with one
typed bind parameter per column so that they can be executed on the flush's
own connection from inside mapper events.
'''
import logging
logger = logging.getLogger('revaudit')

from sqlalchemy import bindparam, text, types

from .exc import MetadataResolutionError


class RevisionColumn:
    '''One column of an audit row and where its value comes from.

    Exactly one of field, association or discriminator is set.
    '''

    def __init__(self, name, type_, field=None, association=None,
            target_column=None, discriminator=False):
        self.name = name
        self.type = type_
        self.field = field
        self.association = association
        self.target_column = target_column
        self.discriminator = discriminator

    def __repr__(self):
        return '<RevisionColumn %s>' % self.name


def revision_columns(class_metadata, metadata_factory):
    '''Data columns of the audit row for class_metadata, in statement order.

    To-one foreign keys come first, then every scalar field not already
    written as a foreign key, then the discriminator. For a joined-table
    subclass fields and associations of ancestors are left out (they belong
    to the ancestor's row), except the identifier.
    '''
    out = []
    written = set()
    for assoc in class_metadata.associations:
        if class_metadata.is_joined and assoc.inherited:
            continue
        if not assoc.is_to_one_owning_side:
            continue
        target = metadata_factory.get_class_metadata(assoc.target_class)
        for source_column, target_column in assoc.join_columns:
            target_field = target.field_for_column(target_column)
            if target_field is None:
                msg = 'Could not resolve database type for column "%s" of %s' \
                        % (source_column, class_metadata.name)
                raise MetadataResolutionError(msg)
            written.add(source_column)
            out.append(RevisionColumn(source_column, target_field.type,
                association=assoc, target_column=target_column))

    for field in class_metadata.fields:
        if field.column in written:
            continue
        if class_metadata.is_joined and field.inherited and \
                not field.identifier:
            continue
        out.append(RevisionColumn(field.column, field.type, field=field))

    if class_metadata.discriminator_column is not None and (
            class_metadata.is_single_table or
            (class_metadata.is_joined and class_metadata.is_root)):
        out.append(RevisionColumn(class_metadata.discriminator_column,
            class_metadata.discriminator_type, discriminator=True))
    return out


class StatementTemplate:
    '''A cached INSERT statement for an audit table.'''

    def __init__(self, table_name, columns, column_types, dialect):
        self.table_name = table_name
        self.columns = list(columns)
        self.keys = ['p%d' % i for i in range(len(self.columns))]
        quote = dialect.identifier_preparer.quote
        self.sql = 'INSERT INTO %s (%s) VALUES (%s)' % (
                quote(table_name),
                ', '.join(quote(col) for col in self.columns),
                ', '.join(':' + key for key in self.keys))
        self.statement = text(self.sql).bindparams(*[
            bindparam(key, type_=type_)
            for key, type_ in zip(self.keys, column_types)])

    def execute(self, connection, values):
        params = dict(zip(self.keys, values))
        return connection.execute(self.statement, params)

    def __repr__(self):
        return '<StatementTemplate %s>' % self.sql


class RevisionSQL:
    '''Cache of audit INSERT statements.

    Keyed by dialect name plus the class name for audit tables, or plus
    "owner class.target class.join table" for join audit tables. The SQL
    text is quoted for that dialect.
    '''

    def __init__(self, config, metadata_factory):
        self.config = config
        self.metadata_factory = metadata_factory
        self.insert_revision_sql = {}
        self.insert_join_table_revision_sql = {}

    def _revision_columns(self):
        return ([self.config.revision_field_name,
                    self.config.revision_type_field_name],
                [self.config.revision_id_field_type, types.String()])

    def get_insert_revision_sql(self, class_metadata, dialect):
        key = (dialect.name, class_metadata.name)
        if key not in self.insert_revision_sql:
            columns, column_types = self._revision_columns()
            for col in revision_columns(class_metadata,
                    self.metadata_factory):
                columns.append(col.name)
                column_types.append(col.type)
            template = StatementTemplate(
                    self.config.get_table_name(class_metadata),
                    columns, column_types, dialect)
            logger.debug('Built %s' % template)
            self.insert_revision_sql[key] = template
        return self.insert_revision_sql[key]

    def get_insert_join_table_revision_sql(self, class_metadata,
            target_metadata, assoc, dialect):
        key = (dialect.name, '%s.%s.%s' % (class_metadata.name,
                target_metadata.name, assoc.join_table_name))
        if key not in self.insert_join_table_revision_sql:
            columns, column_types = self._revision_columns()
            for join_column, source_column in assoc.relation_to_source:
                columns.append(join_column)
                column_types.append(self.metadata_factory.resolve_column_type(
                    class_metadata, source_column))
            for join_column, target_column in assoc.relation_to_target:
                columns.append(join_column)
                column_types.append(self.metadata_factory.resolve_column_type(
                    target_metadata, target_column))
            template = StatementTemplate(
                    self.config.get_join_table_name(assoc.join_table_name),
                    columns, column_types, dialect)
            logger.debug('Built %s' % template)
            self.insert_join_table_revision_sql[key] = template
        return self.insert_join_table_revision_sql[key]


def make_update_statement(config, table_name, revision_id, values,
        identifier, dialect):
    '''UPDATE of a single audit row, identified by revision and primary key.

    :param values: [(column, type, value)] columns to set.
    :param identifier: [(column, type, value)] primary key of the row.
    :return: (statement, params)
    '''
    quote = dialect.identifier_preparer.quote
    params = {}
    binds = []
    assignments = []
    for i, (column, type_, value) in enumerate(values):
        key = 'c%d' % i
        assignments.append('%s = :%s' % (quote(column), key))
        binds.append(bindparam(key, type_=type_))
        params[key] = value
    conditions = ['%s = :rev' % quote(config.revision_field_name)]
    binds.append(bindparam('rev', type_=config.revision_id_field_type))
    params['rev'] = revision_id
    for i, (column, type_, value) in enumerate(identifier):
        key = 'id%d' % i
        conditions.append('%s = :%s' % (quote(column), key))
        binds.append(bindparam(key, type_=type_))
        params[key] = value
    sql = 'UPDATE %s SET %s WHERE %s' % (quote(table_name),
            ', '.join(assignments), ' AND '.join(conditions))
    return text(sql).bindparams(*binds), params
