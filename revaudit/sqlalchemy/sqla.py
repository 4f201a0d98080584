'''Generic sqlalchemy code (not specifically related to auditing).
'''
from sqlalchemy import inspect
from sqlalchemy.orm import scoped_session


class SQLAlchemyMixin:
    def __init__(self, **kw):
        for k, v in kw.items():
            setattr(self, k, v)

    def __str__(self):
        # only show what is loaded so printing never emits SQL
        state = inspect(self)
        out = '<%s' % self.__class__.__name__
        for prop in state.mapper.column_attrs:
            out += ' %s=%s' % (prop.key, state.dict.get(prop.key))
        out += '>'
        return out

    def __repr__(self):
        return self.__str__()


class SQLAlchemySession:
    '''Handle setting/getting audit attributes on the SQLAlchemy session.

    Attributes are kept in ``session.info`` so they survive for the lifetime
    of the session. A scoped session is resolved to its current session.
    '''

    @classmethod
    def _info(self, session):
        if isinstance(session, scoped_session):
            # act on the session of the current scope
            session = session()
        return session.info

    @classmethod
    def disable_revisioning(self, session):
        self._info(session)['revisioning_disabled'] = True

    @classmethod
    def enable_revisioning(self, session):
        self._info(session).pop('revisioning_disabled', None)

    @classmethod
    def revisioning_disabled(self, session):
        if session is None:
            return False
        return self._info(session).get('revisioning_disabled', False)

    @classmethod
    def set_author(self, session, author):
        self._info(session)['revision_author'] = author

    @classmethod
    def get_author(self, session):
        '''Get the author set on this session.

        NB: will return None if not set
        '''
        if session is None:
            return None
        return self._info(session).get('revision_author')


def get_identifier(obj):
    '''Primary key values of obj keyed by attribute name.

    Persistent objects answer from their identity key so that expired
    attributes are not reloaded; pending objects answer from whatever has been
    assigned so far (None until their INSERT has run).
    '''
    state = inspect(obj)
    mapper = state.mapper
    if state.identity is not None:
        values = state.identity
    else:
        values = [state.dict.get(mapper.get_property_by_column(col).key)
                for col in mapper.primary_key]
    out = {}
    for col, value in zip(mapper.primary_key, values):
        out[mapper.get_property_by_column(col).key] = value
    return out


def has_identifier(obj):
    return None not in get_identifier(obj).values()


def get_object_id(obj):
    '''Tuple identifying obj across the unit of work: class name plus pk.'''
    identifier = get_identifier(obj)
    object_id = [obj.__class__.__name__]
    object_id.extend(identifier[key] for key in sorted(identifier))
    return tuple(object_id)
