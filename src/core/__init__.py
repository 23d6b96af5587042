"""
Core video logic.

Framework-agnostic: nothing here imports FastAPI, boto3 or Snowflake. The
pipeline talks to its collaborators through protocols, so it can be tested
with in-memory fakes.
"""
