'''Configuration of audit table naming, ignored columns and actors.'''
from datetime import datetime

from sqlalchemy import types


class AuditConfiguration:
    '''Settings consumed by the revision listener.

    :param table_prefix: prepended to a table name to get its audit table.
    :param table_suffix: appended to a table name to get its audit table.
    :param revision_table_name: name of the table holding one row per
        revision.
    :param revision_field_name: column in audit tables referencing the
        revision.
    :param revision_type_field_name: column in audit tables holding the
        change type (INS, UPD, DEL).
    :param revision_id_field_type: SQLAlchemy type of revision ids.
    :param global_ignore_columns: attribute or column names whose changes
        alone never produce an audit row (e.g. ``updated_at``).
    :param username_callable: returns the current actor, stored on each
        revision.
    :param clock: returns the current time for revision timestamps.
    '''

    def __init__(self, table_prefix='', table_suffix='_audit',
            revision_table_name='revisions',
            revision_field_name='rev',
            revision_type_field_name='revtype',
            revision_id_field_type=None,
            global_ignore_columns=None,
            username_callable=None,
            clock=None):
        self.table_prefix = table_prefix
        self.table_suffix = table_suffix
        self.revision_table_name = revision_table_name
        self.revision_field_name = revision_field_name
        self.revision_type_field_name = revision_type_field_name
        if revision_id_field_type is None:
            revision_id_field_type = types.Integer()
        self.revision_id_field_type = revision_id_field_type
        self.global_ignore_columns = list(global_ignore_columns or [])
        self.username_callable = username_callable
        self.clock = clock

    def get_table_name(self, class_metadata):
        return self.get_join_table_name(class_metadata.table_name)

    def get_join_table_name(self, table_name):
        return self.table_prefix + table_name + self.table_suffix

    def get_current_username(self):
        if self.username_callable is None:
            return None
        return self.username_callable()

    def set_current_username(self, username):
        self.username_callable = lambda: username

    def now(self):
        if self.clock is None:
            return datetime.now()
        return self.clock()
