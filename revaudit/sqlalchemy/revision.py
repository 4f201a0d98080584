'''Allocation of the revision shared by every audit row of a flush.'''
import logging
logger = logging.getLogger('revaudit')

from sqlalchemy import MetaData

from .base import make_revision_table
from .exc import RevisionAllocationError


class RevisionAllocator:
    '''Lazily insert one revision row per unit of work.

    The first call to `get_revision_id` inserts the revision row (timestamp
    and author) and caches its id; later calls return the cached id until
    `reset` is called.
    '''

    def __init__(self, config):
        self.config = config
        self.revision_table = make_revision_table(MetaData(), config)
        self.revision_id = None
        self.author = None

    def reset(self, author=None):
        self.revision_id = None
        self.author = author

    def get_revision_id(self, connection):
        if self.revision_id is None:
            username = self.author
            if username is None:
                username = self.config.get_current_username()
            result = connection.execute(
                    self.revision_table.insert().values(
                        timestamp=self.config.now(),
                        username=username))
            pk = result.inserted_primary_key
            if pk is None or pk[0] is None:
                raise RevisionAllocationError(
                        'Unable to retrieve the last revision id.')
            self.revision_id = pk[0]
            logger.debug('Allocated revision %s (author: %s)' % (
                self.revision_id, username))
        return self.revision_id
