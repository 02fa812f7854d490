"""LangGraph workflow definition for question generation."""

from typing import TYPE_CHECKING, Literal

from langgraph.graph import END, StateGraph

from medquiz.graph.state import GenerationState

if TYPE_CHECKING:
    from medquiz.agents.generator import QuestionGenerator


def should_extract(state: GenerationState) -> Literal["extract", "end"]:
    """
    Skip extraction when no model produced text.

    Args:
        state: Current generation state

    Returns:
        "extract" if there is raw text to parse, "end" otherwise
    """
    if state.get("raw_text"):
        return "extract"
    return "end"


def create_generation_workflow(generator: "QuestionGenerator") -> StateGraph:
    """
    Create the LangGraph workflow for question generation.

    The workflow follows this structure:
    1. build_prompt - Render the request into a prompt
    2. generate - Call the model fallback chain
    3. [Conditional] Stop if nothing came back
    4. extract - Parse and validate the questions

    Args:
        generator: Supplies the node implementations

    Returns:
        Uncompiled StateGraph
    """
    workflow = StateGraph(GenerationState)

    workflow.add_node("build_prompt", generator.build_prompt)
    workflow.add_node("generate", generator.call_model)
    workflow.add_node("extract", generator.extract)

    workflow.set_entry_point("build_prompt")
    workflow.add_edge("build_prompt", "generate")
    workflow.add_conditional_edges(
        "generate",
        should_extract,
        {
            "extract": "extract",
            "end": END,
        },
    )
    workflow.add_edge("extract", END)

    return workflow


def compile_workflow(generator: "QuestionGenerator"):
    """
    Compile the workflow and return it ready for execution.

    Args:
        generator: Supplies the node implementations

    Returns:
        Compiled workflow
    """
    return create_generation_workflow(generator).compile()
