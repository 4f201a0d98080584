'''Audit metadata for mapped classes.

The listener never looks at mappers directly. Each audited class (and any
class it is related to) is described once by a `ClassMetadata` built from its
mapper: its fields, the associations it owns and how it takes part in an
inheritance hierarchy.
'''
import logging
logger = logging.getLogger('revaudit')

from sqlalchemy import Column
from sqlalchemy.orm import class_mapper, ColumnProperty
from sqlalchemy.orm.exc import UnmappedColumnError
from sqlalchemy.orm.interfaces import MANYTOONE

from .exc import MetadataResolutionError


class InheritanceType:
    NONE = 'none'
    SINGLE_TABLE = 'single_table'
    JOINED = 'joined'


class FieldMetadata:
    '''A column-based attribute.

    :param table_name: the table the column physically lives in (for a
        joined-table subclass inherited fields live in an ancestor's table).
    '''

    def __init__(self, name, column, type_, table_name, identifier=False,
            inherited=False):
        self.name = name
        self.column = column
        self.type = type_
        self.table_name = table_name
        self.identifier = identifier
        self.inherited = inherited

    def __repr__(self):
        return '<FieldMetadata %s (%s.%s)>' % (self.name, self.table_name,
                self.column)


class AssociationMetadata:
    MANY_TO_ONE = 'many_to_one'
    ONE_TO_MANY = 'one_to_many'
    MANY_TO_MANY = 'many_to_many'

    def __init__(self, name, kind, target_class, owning_side,
            join_columns=(), join_table=None, relation_to_source=(),
            relation_to_target=(), inherited=False):
        self.name = name
        self.kind = kind
        self.target_class = target_class
        self.owning_side = owning_side
        # [(fk column on our table, referenced column on target)]
        self.join_columns = list(join_columns)
        self.join_table = join_table
        # [(join table column, referenced column on owner/target)]
        self.relation_to_source = list(relation_to_source)
        self.relation_to_target = list(relation_to_target)
        self.inherited = inherited

    @property
    def join_table_name(self):
        if self.join_table is None:
            return None
        return self.join_table.name

    @property
    def is_to_one_owning_side(self):
        return self.owning_side and self.kind == self.MANY_TO_ONE

    @property
    def is_many_to_many_owning_side(self):
        return self.owning_side and self.kind == self.MANY_TO_MANY

    def __repr__(self):
        return '<AssociationMetadata %s %s -> %s>' % (self.name, self.kind,
                self.target_class.__name__)


class ClassMetadata:
    def __init__(self, class_, table, fields, associations, identifier,
            inheritance_type=InheritanceType.NONE, root_class=None,
            discriminator_column=None, discriminator_type=None,
            discriminator_value=None, version_field=None):
        self.class_ = class_
        self.name = '%s.%s' % (class_.__module__, class_.__qualname__)
        self.table = table
        self.fields = fields
        self.associations = associations
        self.identifier = identifier
        self.inheritance_type = inheritance_type
        self.root_class = root_class or class_
        self.discriminator_column = discriminator_column
        self.discriminator_type = discriminator_type
        self.discriminator_value = discriminator_value
        self.version_field = version_field

        self._fields_by_name = dict((f.name, f) for f in fields)
        self._fields_by_column = {}
        # own table wins when a column name appears in several tables
        for field in fields:
            if field.table_name == self.table_name or \
                    field.column not in self._fields_by_column:
                self._fields_by_column[field.column] = field

    @property
    def table_name(self):
        return self.table.name

    @property
    def is_root(self):
        return self.root_class is self.class_

    @property
    def is_joined(self):
        return self.inheritance_type == InheritanceType.JOINED

    @property
    def is_single_table(self):
        return self.inheritance_type == InheritanceType.SINGLE_TABLE

    def get_field(self, name):
        return self._fields_by_name.get(name)

    def field_for_column(self, column):
        return self._fields_by_column.get(column)

    def is_identifier(self, name):
        return name in self.identifier

    def __repr__(self):
        return '<ClassMetadata %s>' % self.name


class MetadataFactory:
    '''Registry of audited classes and builder of their `ClassMetadata`.'''

    def __init__(self, audited_classes=()):
        self._audited = []
        self._metadata = {}
        for class_ in audited_classes:
            self.register(class_)

    @property
    def audited_classes(self):
        return list(self._audited)

    def register(self, class_):
        if class_ in self._audited:
            return self._metadata[class_]
        logger.debug('Registering audited class %s' % class_.__name__)
        self._audited.append(class_)
        meta = self.get_class_metadata(class_)
        # the root row of a joined hierarchy is written alongside each subclass
        self.get_class_metadata(meta.root_class)
        return meta

    def is_audited(self, class_):
        return class_ in self._audited

    def get_class_metadata(self, class_):
        if class_ not in self._metadata:
            self._metadata[class_] = build_class_metadata(class_)
        return self._metadata[class_]

    def resolve_column_type(self, class_metadata, column):
        '''Storage type of a column of class_metadata's own table.

        Either the column is one of the class's fields, or it is the foreign
        key of a to-one association and takes the type of the referenced
        column on the target class.
        '''
        field = class_metadata.field_for_column(column)
        if field is not None:
            return field.type
        for assoc in class_metadata.associations:
            if not assoc.is_to_one_owning_side:
                continue
            for source_column, target_column in assoc.join_columns:
                if source_column != column:
                    continue
                target = self.get_class_metadata(assoc.target_class)
                target_field = target.field_for_column(target_column)
                if target_field is not None:
                    return target_field.type
        msg = 'Could not resolve database type for column "%s" of %s' % (
                column, class_metadata.name)
        raise MetadataResolutionError(msg)


def _inheritance_type(mapper):
    if mapper.inherits is not None and not mapper.concrete:
        if mapper.single:
            return InheritanceType.SINGLE_TABLE
        return InheritanceType.JOINED
    for sub in mapper.self_and_descendants:
        if sub is mapper or sub.concrete:
            continue
        if sub.single:
            return InheritanceType.SINGLE_TABLE
        return InheritanceType.JOINED
    return InheritanceType.NONE


def _is_inverse(prop):
    return prop.viewonly or prop.info.get('audit_inverse', False)


def _join_position(prop):
    positions = dict((col.key, i) for i, col in enumerate(prop.secondary.c))
    return min(positions[join_col.key]
            for src_col, join_col in prop.synchronize_pairs)


def _owns_join_table(prop):
    '''Whether prop owns its many-to-many join table.

    Of two relationships mapping the same join table in opposite directions
    (backref or back_populates) only one is owning: the one whose columns
    come first in the join table, unless the other one is marked inverse.
    '''
    if _is_inverse(prop):
        return False
    for other in prop._reverse_property:
        if other.secondary is None or _is_inverse(other):
            continue
        return _join_position(prop) < _join_position(other)
    return True


def build_class_metadata(class_):
    mapper = class_mapper(class_, configure=True)
    local_table = mapper.local_table
    inheritance_type = _inheritance_type(mapper)

    discriminator = mapper.polymorphic_on
    if not isinstance(discriminator, Column):
        # no discriminator, or a SQL expression we cannot write back
        discriminator = None

    fields = []
    seen = {}
    # walk tables from the root down so that fields keep table order
    for om in reversed(list(mapper.iterate_to_root())):
        for col in om.local_table.c:
            try:
                prop = mapper.get_property_by_column(col)
            except UnmappedColumnError:
                # in the case of single table inheritance, there may be
                # columns on the mapped table intended for a sibling only.
                continue
            if not isinstance(prop, ColumnProperty):
                continue
            if discriminator is not None and col is discriminator:
                continue
            inherited = inheritance_type == InheritanceType.JOINED and \
                    col.table is not local_table
            field = FieldMetadata(prop.key, col.name, col.type, col.table.name,
                    identifier=col.primary_key, inherited=inherited)
            if prop.key in seen:
                # joined subclass pk: prefer the column on our own table
                if not inherited:
                    fields[seen[prop.key]] = field
                continue
            seen[prop.key] = len(fields)
            fields.append(field)

    identifier = []
    for col in mapper.primary_key:
        key = mapper.get_property_by_column(col).key
        if key not in identifier:
            identifier.append(key)
    for key in identifier:
        if key in seen:
            fields[seen[key]].identifier = True

    associations = []
    for prop in mapper.relationships:
        inherited = prop.parent is not mapper
        target_class = prop.mapper.class_
        if prop.secondary is not None:
            assoc = AssociationMetadata(prop.key,
                    AssociationMetadata.MANY_TO_MANY, target_class,
                    _owns_join_table(prop),
                    join_table=prop.secondary,
                    relation_to_source=[(join_col.name, src_col.name)
                        for src_col, join_col in prop.synchronize_pairs],
                    relation_to_target=[(join_col.name, target_col.name)
                        for target_col, join_col in
                        prop.secondary_synchronize_pairs],
                    inherited=inherited)
        elif prop.direction is MANYTOONE:
            assoc = AssociationMetadata(prop.key,
                    AssociationMetadata.MANY_TO_ONE, target_class,
                    not prop.viewonly,
                    join_columns=[(local.name, remote.name)
                        for local, remote in prop.local_remote_pairs],
                    inherited=inherited)
        else:
            assoc = AssociationMetadata(prop.key,
                    AssociationMetadata.ONE_TO_MANY, target_class, False,
                    inherited=inherited)
        associations.append(assoc)

    version_field = None
    if mapper.version_id_col is not None:
        version_field = mapper.get_property_by_column(
                mapper.version_id_col).key

    return ClassMetadata(class_, local_table, fields, associations,
            identifier,
            inheritance_type=inheritance_type,
            root_class=mapper.base_mapper.class_,
            discriminator_column=(discriminator.name
                if discriminator is not None else None),
            discriminator_type=(discriminator.type
                if discriminator is not None else None),
            discriminator_value=mapper.polymorphic_identity,
            version_field=version_field)
