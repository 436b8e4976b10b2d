"""HAProxy backend synchronizer.

Keeps an HAProxy backend list in line with a tagged EC2 instance group:
 - consumes SNS change notifications from an SQS queue
 - re-reads the group's running/pending instances from EC2
 - renders haproxy.cfg from a template and swaps it in atomically
 - runs a reload script so HAProxy picks up the new file
"""
