"""LangGraph workflow and state for question generation."""

# Note: workflow nodes come from medquiz.agents, which imports this package.
# Import directly from modules as needed:
# from medquiz.graph.state import GenerationState, create_initial_state
# from medquiz.graph.workflow import compile_workflow, create_generation_workflow
