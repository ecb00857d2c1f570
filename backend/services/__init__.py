"""Services for the Reflect chat study API."""
from .errors import ChatError, ConversationError
from .session_store import SessionStore, SupabaseSessionStore, FileSessionStore, StorageError
from .storage_gateway import StorageGateway, SaveResult, StorageUnavailableError
from .participant_directory import ParticipantDirectory
from .state_tracker import ConversationStateTracker, ConversationStateEntry
from .llm_client import LLMClient, LLMError, LLMClientError
from .summary_safety_net import SummarySafetyNet
from .turn_processor import TurnProcessor, TurnResult, EndResult
from .conversation_manager import ConversationManager

__all__ = ['ChatError', 'ConversationError', 'SessionStore', 'SupabaseSessionStore', 'FileSessionStore', 'StorageError', 'StorageGateway', 'SaveResult', 'StorageUnavailableError', 'ParticipantDirectory', 'ConversationStateTracker', 'ConversationStateEntry', 'LLMClient', 'LLMError', 'LLMClientError', 'SummarySafetyNet', 'TurnProcessor', 'TurnResult', 'EndResult', 'ConversationManager']
