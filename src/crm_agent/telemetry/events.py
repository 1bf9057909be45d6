"""Semantic event names for structured logging.

Use these constants as the event argument of log calls so that events can be
queried consistently from the JSON log.
"""

# Request lifecycle
REQUEST_RECEIVED = "request_received"
REPLY_READY = "reply_ready"
RUN_FAILED = "run_failed"
ORCHESTRATOR_FATAL_ERROR = "orchestrator_fatal_error"

# LLM calls
MODEL_CALL_STARTED = "model_call_started"
MODEL_CALL_COMPLETED = "model_call_completed"
MODEL_CALL_ERROR = "model_call_error"
IMAGE_RETRY = "image_retry_without_attachments"
ATTACHMENT_REJECTED = "attachment_rejected"

# Tool calls
TOOL_CALL_STARTED = "tool_call_started"
TOOL_CALL_COMPLETED = "tool_call_completed"
TOOL_CALL_FAILED = "tool_call_failed"
TOOL_CALL_SKIPPED = "tool_call_skipped"
TOOL_REGISTERED = "tool_registered"

# Continuation
CONTINUATION_DECIDED = "continuation_decided"
CONTINUATION_CEILING_REACHED = "continuation_ceiling_reached"

# Approval
APPROVAL_REQUIRED = "approval_required"
APPROVAL_GRANTED = "approval_granted"

# CRM adapter
CRM_REQUEST_COMPLETED = "crm_request_completed"
CRM_REQUEST_FAILED = "crm_request_failed"
CRM_REQUEST_RETRY = "crm_request_retry"

# Conversation log
CONVERSATION_LOGGED = "conversation_logged"
CONVERSATION_LOG_FAILED = "conversation_log_failed"
