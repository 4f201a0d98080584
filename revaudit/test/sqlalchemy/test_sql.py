import pytest
from sqlalchemy import types
from sqlalchemy.dialects import postgresql

from revaudit.sqlalchemy.exc import MetadataResolutionError
from revaudit.sqlalchemy.metadata import AssociationMetadata
from revaudit.sqlalchemy.sql import RevisionSQL, make_update_statement, \
        revision_columns
from demo import *


factory = repo.metadata_factory
dialect = repo.engine.dialect


def meta(class_):
    return factory.get_class_metadata(class_)


class TestRevisionColumns:
    def test_foreign_keys_first(self):
        names = [col.name for col in revision_columns(meta(Package), factory)]
        assert set(names[:2]) == set(['license_id', 'parent_id'])
        assert names[2:] == ['id', 'name', 'title', 'notes', 'updated_at']

    def test_foreign_key_typed_by_target(self):
        cols = revision_columns(meta(Package), factory)
        license_id = [col for col in cols if col.name == 'license_id'][0]
        assert license_id.association.name == 'license'
        assert license_id.target_column == 'id'
        assert isinstance(license_id.type, types.Integer)

    def test_joined_subclass(self):
        names = [col.name for col in revision_columns(meta(Document), factory)]
        assert names == ['id', 'body']

    def test_joined_root(self):
        cols = revision_columns(meta(Resource), factory)
        assert [col.name for col in cols] == ['id', 'name', 'type']
        assert cols[-1].discriminator

    def test_single_table(self):
        names = [col.name for col in revision_columns(meta(Organization),
            factory)]
        assert names == ['id', 'name', 'homepage', 'kind']


class TestRevisionSQL:

    @classmethod
    def setup_class(self):
        self.sql = RevisionSQL(config, factory)

    def test_insert(self):
        template = self.sql.get_insert_revision_sql(meta(License), dialect)
        assert template.table_name == 'license_audit'
        assert template.columns == ['rev', 'revtype', 'id', 'name', 'open']
        assert template.sql.startswith('INSERT INTO license_audit (')
        assert template.sql.endswith('VALUES (:p0, :p1, :p2, :p3, :p4)')

    def test_insert_cached(self):
        first = self.sql.get_insert_revision_sql(meta(Tag), dialect)
        second = self.sql.get_insert_revision_sql(meta(Tag), dialect)
        assert first is second

    def test_insert_per_class(self):
        party = self.sql.get_insert_revision_sql(meta(Party), dialect)
        org = self.sql.get_insert_revision_sql(meta(Organization), dialect)
        assert party is not org
        assert party.table_name == org.table_name == 'party_audit'

    def test_join_table(self):
        assoc = meta(Package).associations[
                [a.name for a in meta(Package).associations].index('tags')]
        template = self.sql.get_insert_join_table_revision_sql(meta(Package),
                meta(Tag), assoc, dialect)
        assert template.sql == 'INSERT INTO package_tag_audit ' \
                '(rev, revtype, package_id, tag_id) VALUES (:p0, :p1, :p2, :p3)'
        again = self.sql.get_insert_join_table_revision_sql(meta(Package),
                meta(Tag), assoc, dialect)
        assert again is template

    def test_join_table_unresolvable(self):
        assoc = AssociationMetadata('bogus', AssociationMetadata.MANY_TO_MANY,
                Tag, True, join_table=package_tag_table,
                relation_to_source=[('package_id', 'nosuchcolumn')],
                relation_to_target=[('tag_id', 'id')])
        sql = RevisionSQL(config, factory)
        with pytest.raises(MetadataResolutionError):
            sql.get_insert_join_table_revision_sql(meta(Package), meta(Tag),
                    assoc, dialect)


class TestUpdateStatement:
    def test_update(self):
        statement, params = make_update_statement(config, 'package_audit', 4,
                [('parent_id', types.Integer(), 7)],
                [('id', types.Integer(), 2)], dialect)
        assert str(statement) == 'UPDATE package_audit SET parent_id = :c0 ' \
                'WHERE rev = :rev AND id = :id0'
        assert params == {'c0': 7, 'rev': 4, 'id0': 2}


class TestDialects:
    def test_cached_per_dialect(self):
        sql = RevisionSQL(config, factory)
        sqlite = sql.get_insert_revision_sql(meta(License), dialect)
        pg = sql.get_insert_revision_sql(meta(License), postgresql.dialect())
        assert sqlite is not pg
        assert sql.get_insert_revision_sql(meta(License), dialect) is sqlite
