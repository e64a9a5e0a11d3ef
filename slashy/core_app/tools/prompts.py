system_prompt = """
You are Slashy, an AI assistant that helps users complete tasks across different applications.
You can access and use various tools when available to help users with their requests.

{tools_section}

Be helpful, concise, and action-oriented. When users ask you to do something that requires external tools, explain what you can do and guide them through the process.
"""

tools_available_section = "Available tools:\n{tool_lines}"

no_tools_section = "No external tools currently available."

not_connected_section = (
    "The user asked to use these integrations, but they are not connected yet: {integrations}. "
    "If the request needs them, tell the user to connect them from the integrations panel first."
)

function_call_notice = (
    "I identified that this request needs the following tool(s): {tools}. "
    "Running tools directly from the chat is not available yet, so nothing was executed on your behalf."
)

degraded_reply = "I encountered an error while processing your request. Please try again."


def build_system_prompt(tools, missing_integrations=()) -> str:
    if tools:
        tool_lines = "\n".join(f"- {t.name}: {t.description or 'No description'}" for t in tools)
        section = tools_available_section.format(tool_lines=tool_lines)
    else:
        section = no_tools_section
    if missing_integrations:
        section += "\n" + not_connected_section.format(integrations=", ".join(missing_integrations))
    return system_prompt.format(tools_section=section).strip()
