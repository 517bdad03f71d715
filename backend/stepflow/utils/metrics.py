from prometheus_client import Counter, Histogram

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Flow Engine Metrics
turn_counter = Counter('flow_turns_total', 'Conversation turns processed', ['stream', 'outcome'])
turn_duration_histogram = Histogram('turn_duration_seconds', 'Turn processing time in seconds', ['stream'])
step_prompt_counter = Counter('flow_step_prompts_total', 'Step prompts executed', ['step'])

# Collaborator Metrics
external_calls_counter = Counter('external_calls_total', 'Calls to external collaborators', ['operation', 'status'])
result_delivery_counter = Counter('result_deliveries_total', 'Turn results handed to the delivery sink', ['status'])
state_store_operations = Counter('state_store_operations_total', 'Conversation state store operations', ['operation', 'status'])

# HTTP Metrics
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
webhook_signature_counter = Counter('webhook_signature_verifications_total', 'Webhook signature verifications', ['status'])
