"""Draft tracking: log parsing, log tailing and the draft state machine."""
from .log_watcher import LogWatcher, find_log_dir
from .state_machine import DraftPick, DraftState, DraftStateMachine

__all__ = ["DraftPick", "DraftState", "DraftStateMachine", "LogWatcher", "find_log_dir"]
