# constants.py
from __future__ import annotations

# job names
PRE_ACTIVATION = "pre_activation"
ACTIVATION = "activation"
AGENT = "agent"
DETECTION = "detection"
SAFE_OUTPUTS = "safe_outputs"
CONCLUSION = "conclusion"

BUILTIN_JOBS = (PRE_ACTIVATION, ACTIVATION, AGENT, DETECTION, SAFE_OUTPUTS, CONCLUSION)

# pre_activation check steps and their boolean outputs
CHECK_MEMBERSHIP = "check_membership"
CHECK_RATE_LIMIT = "check_rate_limit"
CHECK_STOP_TIME = "check_stop_time"
CHECK_SKIP_IF_MATCH = "check_skip_if_match"
CHECK_SKIP_IF_NO_MATCH = "check_skip_if_no_match"
CHECK_SKIP_ROLES = "check_skip_roles"
CHECK_COMMAND_POSITION = "check_command_position"

IS_TEAM_MEMBER = "is_team_member"
RATE_LIMIT_OK = "rate_limit_ok"
STOP_TIME_OK = "stop_time_ok"
SKIP_CHECK_OK = "skip_check_ok"
SKIP_NO_MATCH_CHECK_OK = "skip_no_match_check_ok"
SKIP_ROLES_OK = "skip_roles_ok"
COMMAND_POSITION_OK = "command_position_ok"
MATCHED_COMMAND = "matched_command"

ACTIVATED = "activated"

# activation steps
REACTION_STEP = "react"
STALENESS_STEP = "check_workflow_timestamp"
COMPUTE_TEXT_STEP = "compute_text"
STATUS_COMMENT_STEP = "status_comment"
LOCK_STEP = "lock_issue"

# agent / detection steps
COLLECT_OUTPUT_STEP = "collect_output"
DETECTION_STEP = "detection_conclusion"

# where the setup action unpacks handler scripts
SCRIPTS_DIR = "/tmp/flowgate/actions"
