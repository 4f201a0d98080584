'''Table helpers: the revision table and the audit (shadow) tables.
'''
import logging
logger = logging.getLogger('revaudit')

from sqlalchemy import Table, Column, ForeignKey, DateTime, String


def make_revision_table(metadata, config):
    revision_table = Table(config.revision_table_name, metadata,
            Column('id', config.revision_id_field_type, primary_key=True),
            Column('timestamp', DateTime),
            Column('username', String(255)),
            )
    return revision_table


def copy_column(col, primary_key=None):
    '''Copy a column for use in an audit table.

    Only name and type are kept: audit rows must be writable whatever the
    constraints, defaults and uniqueness of the original table are. Primary
    key columns stay in the key (together with the revision column).

    :param primary_key: override the key flag of the copy.
    '''
    if primary_key is None:
        primary_key = col.primary_key
    return Column(col.name, col.type.copy(),
            primary_key=primary_key,
            nullable=not primary_key,
            autoincrement=False)


def make_audit_table(base_table, config, metadata=None):
    '''Create the audit table corresponding to base_table.

    The audit table has every column of base_table plus the revision column
    (part of the primary key) and the change type column.

    @return audit table.
    '''
    if metadata is None:
        metadata = base_table.metadata
    name = config.get_join_table_name(base_table.name)
    if name in metadata.tables:
        return metadata.tables[name]
    fk_name = config.revision_table_name + '.id'
    audit_table = Table(name, metadata,
            Column(config.revision_field_name, config.revision_id_field_type,
                ForeignKey(fk_name), primary_key=True, autoincrement=False),
            Column(config.revision_type_field_name, String(4),
                nullable=False),
            )
    # a join table without a primary key is keyed by all of its columns
    keyless = len(base_table.primary_key.columns) == 0
    for col in base_table.c:
        audit_table.append_column(copy_column(col,
            primary_key=True if keyless else None))
    return audit_table


def make_audit_tables(metadata, metadata_factory, config):
    '''Create the audit tables of every audited class.

    That is: the class's own table, the root table of a joined hierarchy and
    the join table of every owning many-to-many association.

    @return dict of audit tables keyed by audit table name.
    '''
    out = {}
    for class_ in metadata_factory.audited_classes:
        meta = metadata_factory.get_class_metadata(class_)
        tables = [meta.table]
        if meta.is_joined and not meta.is_root:
            root = metadata_factory.get_class_metadata(meta.root_class)
            tables.append(root.table)
        for assoc in meta.associations:
            if assoc.is_many_to_many_owning_side:
                tables.append(assoc.join_table)
        for table in tables:
            audit_table = make_audit_table(table, config, metadata)
            if audit_table.name not in out:
                logger.debug('Audit table %s for %s' % (audit_table.name,
                    table.name))
            out[audit_table.name] = audit_table
    return out
