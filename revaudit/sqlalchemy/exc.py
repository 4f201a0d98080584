'''Exceptions raised while writing audit rows.

None of these are recovered from inside the engine: they propagate out of the
flush so that the host transaction is rolled back together with any audit
rows already written in it.
'''


class AuditError(Exception):
    pass


class MetadataResolutionError(AuditError):
    '''The storage type or column of an audited field could not be resolved.

    This indicates that the mapper and the audit metadata disagree; the value
    is never guessed.
    '''


class RevisionAllocationError(AuditError):
    '''Inserting the revision row did not give us back an id.'''
