from .initiative import (
    Initiative, InitiativeStatus, Revision, RevisionType, RevisionMetadata,
    Task, TaskKind, TaskPriority, TaskTree, TaskTreeError, STATUS_ORDER,
    MAX_TASK_DEPTH, MAX_TREE_SIZE, check_tree_bounds
)
