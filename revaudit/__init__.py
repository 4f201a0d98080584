'''
About
=====

Revision Audit (revaudit) keeps an append-only history of your domain model.
Every insert, update and delete of an audited object is mirrored into a
'shadow' audit table shaped like the original table, and every audit row
written during one unit of work is tagged with the same revision.

At present the package is provided as an extension to SQLAlchemy.


Copyright and License
=====================

(c) 2007-2008 The Open Knowledge Foundation

Licensed under the MIT license:

  <http://www.opensource.org/licenses/mit-license.php>


Revisions and Audit Rows
========================

To permit 'atomic' changes involving multiple objects at once we introduce an
explicit 'Revision' row which represents a single changeset to the domain
model: it records when the change happened and who made it.

For each audited table we then end up with 2 tables:

  * The original table, which always holds the current state.
  * The audit table, which holds one row per object per revision in which
    that object changed, plus the revision id and a change type (INS, UPD or
    DEL).

Many-to-many links are audited the same way: the join table gets a shadow
join table holding one row per (owner, related object, revision).

To give a flavour of all of this here is a pseudo-code example::

    repo = Repository(metadata, Session, audited_classes=[Book, Author])

    b1 = Book(name='warandpeace', title='War and Peacee')
    a1 = Author(name='tolstoy')
    b1.authors.append(a1)
    Session.add_all([b1, a1])
    # one revision, book_audit INS, author_audit INS, book_author_audit INS
    Session.commit()

    # some time later
    b1.title = 'War and Peace'
    # a second revision with a single book_audit UPD row
    Session.commit()

    Session.delete(b1)
    # a third revision: book_audit DEL plus book_author_audit DEL
    Session.commit()

Replaying the audit rows of an object in revision order gives you the full
sequence of operations applied to it.


How it Works
============

The engine observes the unit of work without owning the transaction:

  1. Before the flush it notes every audited object being inserted or
     updated and writes DEL rows for deleted objects right away (all their
     data is known).
  2. As each INSERT/UPDATE is executed it writes the INS/UPD row.
  3. After the flush it patches those rows with values that were only known
     once the whole flush ran (foreign keys set by a later UPDATE, for
     instance) and writes the many-to-many rows whose related objects did
     not have an id yet.

Reading history back out is up to the application; the audit tables are plain
tables.

Code in Action
--------------

To see some real code in action take a look at::

    revaudit/test/sqlalchemy/demo.py
    revaudit/test/sqlalchemy/test_demo.py
'''
__version__ = '0.5'
__description__ = 'Revision audit tables for SQLAlchemy domain models.'
