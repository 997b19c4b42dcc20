"""Prompt text for the scene agent and for the internal code-generation call."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scene_agent.agent.tool_registry import ToolRegistry

ROLE_PREAMBLE = """\
You are a professional Three.js assistant. You understand what the user wants to see \
and produce the 3D scene code for it.
If the user asks how to create a particular 3D object or scene, use generate_code to \
write the code and execute_code to run it in the browser. You can check code with \
validate_code, look at the result with capture_screenshot, and inspect the scene with \
analyze_scene. If the user is just chatting, answer directly without tools.
"""

CODE_RULES = """\
## Rules for Three.js code

1. Do not create a scene, camera or renderer. Use the existing `scene`, `camera` and `renderer` variables.
2. Do not include any render loop (requestAnimationFrame or an animate function).
3. Do not use import or export statements.
4. Add objects with scene.add(), and make sure every object you create is added.
5. Do not use document.querySelector or any other DOM access.
6. The code must add at least one 3D object to the scene.
7. Do not put any Markdown in code or comments.
8. The code must be plain JavaScript with no wrapper.
9. Do not define functions. Write linear code.
10. Do not use class definitions or module syntax.
"""

CODE_GENERATION_PROMPT = """\
You write Three.js code for a live scene. Reply with the code only: no explanation and \
no Markdown fences.
""" + "\n" + CODE_RULES

COMPLEXITY_HINTS = {
    "simple": "Keep it minimal: a few objects and basic materials.",
    "medium": "Use a reasonable amount of detail: lighting and a few materials.",
    "complex": "Build a detailed scene with several objects, lights and materials.",
}


def _format_tool_docs(registry: ToolRegistry) -> str:
    lines = ["## Available Tools\n"]
    for descriptor in registry.descriptors():
        lines.append(f"### {descriptor.name}")
        lines.append(descriptor.description)
        props = descriptor.parameter_schema.get("properties", {})
        required = set(descriptor.parameter_schema.get("required", []))
        if props:
            lines.append("Parameters:")
            for pname, pinfo in props.items():
                req_marker = " (required)" if pname in required else ""
                desc = pinfo.get("description", "") if isinstance(pinfo, dict) else ""
                lines.append(f"  - {pname}: {desc}{req_marker}")
        lines.append("")
    return "\n".join(lines)


def build_system_prompt(tool_registry: ToolRegistry | None = None) -> str:
    parts = [ROLE_PREAMBLE, CODE_RULES]
    if tool_registry is not None:
        parts.append(_format_tool_docs(tool_registry))
    return "\n".join(parts)


def build_code_request(description: str, complexity: str = "medium") -> str:
    hint = COMPLEXITY_HINTS.get(complexity, COMPLEXITY_HINTS["medium"])
    return f"Write Three.js code for: {description}\n{hint}"
