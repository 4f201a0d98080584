'''Vocabulary shared by every audit backend.'''


class ChangeType:
    '''Marker written into the change type column of an audit row.'''
    INSERT = 'INS'
    UPDATE = 'UPD'
    DELETE = 'DEL'

    ALL = (INSERT, UPDATE, DELETE)
