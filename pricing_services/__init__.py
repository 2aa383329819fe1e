"""
Module: pricing_services
Responsibility:
    Stateful side of the pricing system: the editing session
    (``ProposalDraft``), wizard navigation, the typed event bus, payload
    building and submission, and the collaborator contracts.

Architecture position:
    Services -- orchestration layer.  May import pricing_kernel,
    pricing_engines and pricing_config.  The only layer that talks to
    collaborators.

Usage:
    from pricing_services import ProposalDraft, WizardController, submit_proposal

    draft = ProposalDraft.new()
    wizard = WizardController(draft)
    outcome = submit_proposal(draft, store)
"""

from pricing_services.collaborators import (
    ClientRecord,
    EntityCreator,
    EntityKind,
    LatestWinsLookup,
    LeadRecord,
    ProjectRecord,
    ProjectStatus,
    ProposalStore,
    TagRecord,
    UserRecord,
    default_discount_for,
    filter_selectable_projects,
)
from pricing_services.draft import DraftState, ProposalDraft
from pricing_services.events import DraftEvent, DraftTopic, EventBus
from pricing_services.submission import (
    SubmissionOutcome,
    SubmissionStatus,
    build_payload,
    submit_proposal,
    to_payload_value,
)
from pricing_services.wizard import WizardController

__all__ = [
    "ClientRecord",
    "DraftEvent",
    "DraftState",
    "DraftTopic",
    "EntityCreator",
    "EntityKind",
    "EventBus",
    "LatestWinsLookup",
    "LeadRecord",
    "ProjectRecord",
    "ProjectStatus",
    "ProposalDraft",
    "ProposalStore",
    "SubmissionOutcome",
    "SubmissionStatus",
    "TagRecord",
    "UserRecord",
    "WizardController",
    "build_payload",
    "default_discount_for",
    "filter_selectable_projects",
    "submit_proposal",
    "to_payload_value",
]
