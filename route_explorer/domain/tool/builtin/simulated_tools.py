"""
Simulated analysis tools for the context analyzer preset and for local testing.
"""

from typing import Optional
import json

from route_explorer.domain.tool.tool_registry import ToolDescriptor
from route_explorer.domain.tool.tool_validator import ParameterSpec, ParameterType


def context_analysis_tool() -> ToolDescriptor:
    """analyze_context"""

    def analyze_context(context: str, depth: Optional[str] = None) -> str:
        depth = depth or "basic"
        size = len(context)
        levels = {
            "basic": {
                "summary": f"Basic analysis of the context ({size} characters)",
                "keyPoints": ["Key point 1", "Key point 2"],
                "sentiment": "neutral",
            },
            "detailed": {
                "summary": f"Detailed analysis of the context ({size} characters)",
                "keyPoints": ["Key point 1", "Key point 2", "Key point 3", "Key point 4"],
                "sentiment": "neutral",
                "topics": ["Topic 1", "Topic 2", "Topic 3"],
                "complexity": "medium",
            },
            "comprehensive": {
                "summary": f"Comprehensive analysis of the context ({size} characters)",
                "keyPoints": ["Key point 1", "Key point 2", "Key point 3", "Key point 4", "Key point 5"],
                "sentiment": "neutral",
                "topics": ["Topic 1", "Topic 2", "Topic 3", "Topic 4"],
                "complexity": "medium",
                "entities": ["Entity 1", "Entity 2"],
                "recommendations": ["Recommendation 1", "Recommendation 2"],
            },
        }
        if depth not in levels:
            return json.dumps({"error": f"Unknown depth '{depth}'"})
        return json.dumps(levels[depth], indent=2)

    return ToolDescriptor.local(
        name="analyze_context",
        description="Analyze the given context and produce a detailed report. Useful to understand documents or information.",
        handler=analyze_context,
        parameters={
            "context": ParameterSpec(type=ParameterType.STRING, required=True, description="Text to analyze"),
            "depth": ParameterSpec(type=ParameterType.STRING,
                                   description="Analysis depth: basic, detailed or comprehensive"),
        }
    )


def search_tool() -> ToolDescriptor:
    """search_information"""

    def search_information(query: str, limit: Optional[float] = None) -> str:
        count = min(int(limit) if limit else 5, 5)
        results = [
            {
                "title": f"Result {i + 1} for: {query}",
                "snippet": f"A relevant excerpt about {query}...",
                "relevance": round(1.0 - i * 0.15, 2),
            }
            for i in range(count)
        ]
        return json.dumps({"query": query, "totalResults": len(results), "results": results}, indent=2)

    return ToolDescriptor.local(
        name="search_information",
        description="Search for information about a topic. Useful to obtain up-to-date data.",
        handler=search_information,
        parameters={
            "query": ParameterSpec(type=ParameterType.STRING, required=True, description="Search query"),
            "limit": ParameterSpec(type=ParameterType.NUMBER, description="Maximum number of results"),
        }
    )


def data_processing_tool() -> ToolDescriptor:
    """process_data"""

    def process_data(data: str, operation: str) -> str:
        operations = {
            "clean": {
                "operation": "clean",
                "input_size": len(data),
                "output_size": len(data),
                "removed_items": 0,
                "status": "completed",
            },
            "transform": {
                "operation": "transform",
                "input_format": "raw",
                "output_format": "structured",
                "status": "completed",
            },
            "validate": {
                "operation": "validate",
                "is_valid": True,
                "errors": [],
                "warnings": [],
                "status": "completed",
            },
            "summarize": {
                "operation": "summarize",
                "original_length": len(data),
                "summary_length": int(len(data) * 0.3),
                "compression_ratio": "70%",
                "status": "completed",
            },
        }
        if operation not in operations:
            return json.dumps({"error": f"Unknown operation '{operation}'"})
        return json.dumps(operations[operation], indent=2)

    return ToolDescriptor.local(
        name="process_data",
        description="Process and transform data. Useful to clean and structure information.",
        handler=process_data,
        parameters={
            "data": ParameterSpec(type=ParameterType.STRING, required=True, description="Data to process"),
            "operation": ParameterSpec(type=ParameterType.STRING, required=True,
                                       description="One of: clean, transform, validate, summarize"),
        }
    )
