'''Demo of revaudit for SQLAlchemy.

This module sets up a small domain model with some audited objects. Code
that then uses these objects can be found in test_demo.py.
'''
import logging
logger = logging.getLogger('revaudit')

from sqlalchemy import *
from sqlalchemy.orm import registry, relationship, scoped_session, sessionmaker

from revaudit.sqlalchemy import Repository, AuditConfiguration, SQLAlchemyMixin

metadata = MetaData()

## Demo tables

license_table = Table('license', metadata,
        Column('id', Integer, primary_key=True),
        Column('name', String(100)),
        Column('open', Boolean),
        )

package_table = Table('package', metadata,
        Column('id', Integer, primary_key=True),
        Column('name', String(100), unique=True),
        Column('title', String(100)),
        Column('license_id', Integer, ForeignKey('license.id')),
        Column('parent_id', Integer, ForeignKey('package.id')),
        Column('notes', UnicodeText),
        Column('updated_at', DateTime, onupdate=func.now()),
)

tag_table = Table('tag', metadata,
        Column('id', Integer, primary_key=True),
        Column('name', String(100)),
)

package_tag_table = Table('package_tag', metadata,
        Column('package_id', Integer, ForeignKey('package.id'),
            primary_key=True),
        Column('tag_id', Integer, ForeignKey('tag.id'), primary_key=True),
        )

# versioned, with a join table that has no primary key
book_table = Table('book', metadata,
        Column('id', Integer, primary_key=True),
        Column('title', String(100)),
        Column('version', Integer, nullable=False),
        )

author_table = Table('author', metadata,
        Column('id', Integer, primary_key=True),
        Column('name', String(100)),
        )

book_author_table = Table('book_author', metadata,
        Column('book_id', Integer, ForeignKey('book.id')),
        Column('author_id', Integer, ForeignKey('author.id')),
        )

# many-to-many mapped from both ends
post_table = Table('post', metadata,
        Column('id', Integer, primary_key=True),
        Column('title', String(100)),
        )

label_table = Table('label', metadata,
        Column('id', Integer, primary_key=True),
        Column('name', String(100)),
        )

post_label_table = Table('post_label', metadata,
        Column('post_id', Integer, ForeignKey('post.id'),
            primary_key=True),
        Column('label_id', Integer, ForeignKey('label.id'),
            primary_key=True),
        )

# joined table inheritance
resource_table = Table('resource', metadata,
        Column('id', Integer, primary_key=True),
        Column('type', String(20)),
        Column('name', String(100)),
        )

document_table = Table('document', metadata,
        Column('id', Integer, ForeignKey('resource.id'), primary_key=True),
        Column('body', UnicodeText),
        )

# single table inheritance
party_table = Table('party', metadata,
        Column('id', Integer, primary_key=True),
        Column('kind', String(20)),
        Column('name', String(100)),
        Column('homepage', String(200)),
        )

# not audited
note_table = Table('note', metadata,
        Column('id', Integer, primary_key=True),
        Column('text', UnicodeText),
        )


## -------------------
## Mapped classes

class License(SQLAlchemyMixin):
    pass

class Package(SQLAlchemyMixin):
    pass

class Tag(SQLAlchemyMixin):
    def __init__(self, name):
        self.name = name

class Book(SQLAlchemyMixin):
    pass

class Author(SQLAlchemyMixin):
    pass

class Post(SQLAlchemyMixin):
    pass

class Label(SQLAlchemyMixin):
    pass

class Resource(SQLAlchemyMixin):
    pass

class Document(Resource):
    pass

class Party(SQLAlchemyMixin):
    pass

class Organization(Party):
    pass

class Note(SQLAlchemyMixin):
    pass


## --------------------------------------------------------
## Mapper Stuff

mapper_registry = registry()
mapper = mapper_registry.map_imperatively

mapper(License, license_table)

mapper(Package, package_table, properties={
    'license': relationship(License),
    # written by a second UPDATE after the INSERTs
    'parent': relationship(Package, remote_side=[package_table.c.id],
        post_update=True),
    'tags': relationship(Tag, secondary=package_tag_table),
    })

mapper(Tag, tag_table)

mapper(Book, book_table, version_id_col=book_table.c.version,
        properties={
            'authors': relationship(Author, secondary=book_author_table),
            })
mapper(Author, author_table)

mapper(Post, post_table, properties={
    'labels': relationship(Label, secondary=post_label_table,
        backref='posts'),
    })
mapper(Label, label_table)

mapper(Resource, resource_table,
        polymorphic_on=resource_table.c.type,
        polymorphic_identity='resource')
mapper(Document, document_table, inherits=Resource,
        polymorphic_identity='document')

mapper(Party, party_table,
        polymorphic_on=party_table.c.kind,
        polymorphic_identity='party')
mapper(Organization, inherits=Party, polymorphic_identity='organization')

mapper(Note, note_table)


Session = scoped_session(
            sessionmaker(autoflush=False,
            expire_on_commit=False,
            ))

config = AuditConfiguration(
        global_ignore_columns=['updated_at'],
        username_callable=lambda: 'tester',
        )

## ------------------------
## Repository helper object

repo = Repository(metadata, Session,
        audited_classes=[License, Package, Tag, Resource, Document, Party,
            Organization, Book, Author, Post, Label],
        config=config,
        dburi='sqlite://',
        )
