"""Generation services.

Modules:
    quote_service  - Remote generation webhook client + retry policy
    orchestrator   - LangGraph pipeline: validate → prepare → remote → template → basic
    drafts         - Quote drafts and generation history
"""
