# Collection Names
COLLECTIONS = {
    'issues': 'issues',
    'assignments': 'assignments',
    'playgrounds': 'playgrounds',
    'users': 'users',
    'notifications': 'notifications',
    # Legacy role-partitioned profile collections, read-only fallback
    'citizens': 'citizens',
    'administrators': 'administrators',
    'maintenance': 'maintenance',
}

# Legacy profile collection -> role it implies, in lookup precedence order
LEGACY_PROFILE_COLLECTIONS = (
    ('citizens', 'citizen'),
    ('administrators', 'admin'),
    ('maintenance', 'maintenance'),
)

# Collection Structure Documentation
COLLECTION_SCHEMAS = {
    'issues': {
        'fields': ['reportId', 'title', 'description', 'category', 'severity', 'location', 'playgroundId',
                   'status', 'assignedTo', 'assignedAt', 'assignedBy', 'adminApproved', 'reportedBy',
                   'resolvedBy', 'createdAt', 'updatedAt', 'workCompletedAt', 'resolvedAt', 'photoUrls',
                   'completionProof', 'completionNotes', 'directResolution'],
        'required': ['reportId', 'title', 'category', 'severity', 'location', 'status', 'reportedBy'],
        'indexes': ['status', 'assignedTo', 'reportedBy.uid', 'reportId', 'playgroundId']
    },
    'assignments': {
        'fields': ['issueId', 'issueTitle', 'issueLocation', 'issueSeverity', 'assignedTo', 'assignedToName',
                   'assignedBy', 'assignedAt', 'status', 'notificationSent', 'completedAt'],
        'required': ['issueId', 'assignedTo', 'assignedBy', 'status'],
        'indexes': ['issueId', 'assignedTo', 'status']
    },
    'playgrounds': {
        'fields': ['name', 'address', 'latitude', 'longitude', 'description', 'amenities', 'status',
                   'activeIssues', 'lastInspection'],
        'required': ['name', 'address', 'latitude', 'longitude'],
        'indexes': ['status']
    },
    'users': {
        'fields': ['uid', 'email', 'firstName', 'lastName', 'role', 'createdAt'],
        'required': ['uid', 'email', 'role'],
        'indexes': ['role', 'email']
    },
    'notifications': {
        'fields': ['recipientId', 'title', 'message', 'notificationType', 'issueId', 'priority', 'isRead',
                   'readAt', 'createdAt'],
        'required': ['recipientId', 'title', 'message', 'notificationType'],
        'indexes': ['recipientId', 'isRead', 'createdAt']
    },
}
