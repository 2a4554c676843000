"""
Tool handlers exposed to the model.

Each module provides a `*_tools(context)` factory returning ToolSpecs whose
handlers are bound to the given AgentContext.
"""
