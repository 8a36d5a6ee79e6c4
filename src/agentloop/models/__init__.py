from agentloop.models.activity import Activity
from agentloop.models.agent import Agent, ConversationMessage
from agentloop.models.approval import Approval
from agentloop.models.base import AuditMixin, Base, CreatedAtMixin, UUIDPrimaryKeyMixin
from agentloop.models.chat import ChatChannel, ChatMessage
from agentloop.models.credential import ProviderKey, TeamCredential
from agentloop.models.credit import CreditTransaction, ModelCreditCost, SkillCreditCost, TeamCredit
from agentloop.models.knowledge import KbChunk, KbMemory
from agentloop.models.skill import AgentSkill, McpServer
from agentloop.models.sor import SorPermission, SorRow, SorTable
from agentloop.models.task import Task

__all__ = [
    "Base",
    "UUIDPrimaryKeyMixin",
    "CreatedAtMixin",
    "AuditMixin",
    "Activity",
    "Agent",
    "AgentSkill",
    "Approval",
    "ChatChannel",
    "ChatMessage",
    "ConversationMessage",
    "CreditTransaction",
    "KbChunk",
    "KbMemory",
    "McpServer",
    "ModelCreditCost",
    "ProviderKey",
    "SkillCreditCost",
    "SorPermission",
    "SorRow",
    "SorTable",
    "Task",
    "TeamCredit",
    "TeamCredential",
]
