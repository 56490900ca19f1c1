"""Tool schema definitions advertised by tools/list."""

from __future__ import annotations

from typing import Any


def _tool(name: str, description: str, properties: dict[str, Any] | None = None, required: list[str] | None = None):
    return {
        "name": name,
        "description": description,
        "inputSchema": {
            "type": "object",
            "properties": properties or {},
            "required": required or [],
        },
    }


def _s(description: str, **extra: Any) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


def _n(description: str) -> dict[str, Any]:
    return {"type": "number", "description": description}


_SELECTOR = _s('CSS selector for the element (e.g. "#submit-btn", "button.primary")')
_RECORDING_NAME = _s("Name of the recording")

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    # Session
    _tool("browser_status", "Bridge and agent status: connection, control flag, connected tab, recording state"),
    _tool(
        "browser_list_tabs",
        "List browser tabs available for automation (empty while browser control is disabled)",
    ),
    _tool(
        "browser_connect_tab",
        "Connect to a tab so later commands act on it",
        {"tabId": _n("The ID of the tab to connect to (from browser_list_tabs)")},
        ["tabId"],
    ),
    _tool("browser_disconnect_tab", "Disconnect from the currently connected tab"),
    _tool("browser_get_page_info", "Get URL and title of the currently connected tab"),
    _tool(
        "browser_tab_new",
        "Open a new browser tab",
        {"url": _s("URL to open in the new tab (defaults to about:blank)")},
    ),
    _tool(
        "browser_tab_close",
        "Close a browser tab",
        {"tabId": _n("The ID of the tab to close (defaults to the connected tab)")},
    ),
    # Navigation
    _tool("browser_navigate", "Navigate the connected tab to a URL", {"url": _s("The URL to navigate to")}, ["url"]),
    _tool("browser_go_back", "Go back in browser history"),
    _tool("browser_go_forward", "Go forward in browser history"),
    # Interaction
    _tool("browser_click", "Click an element on the page", {"selector": _SELECTOR}, ["selector"]),
    _tool(
        "browser_type",
        "Type text into an input element",
        {"selector": _s("CSS selector for the input element"), "text": _s("Text to type into the element")},
        ["selector", "text"],
    ),
    _tool(
        "browser_select_option",
        "Select an option from a dropdown",
        {"selector": _s("CSS selector for the select element"), "value": _s("Value of the option to select")},
        ["selector", "value"],
    ),
    _tool(
        "browser_press_key",
        "Press a keyboard key",
        {
            "key": _s('Key to press (e.g. "Enter", "Tab", "Escape", "ArrowDown")'),
            "selector": _s("Optional CSS selector for the element to focus first"),
        },
        ["key"],
    ),
    _tool(
        "browser_hover",
        "Hover over an element (triggers :hover states, tooltips)",
        {"selector": _SELECTOR},
        ["selector"],
    ),
    _tool(
        "browser_drag",
        "Drag an element onto another element",
        {
            "sourceSelector": _s("CSS selector for the element to drag"),
            "targetSelector": _s("CSS selector for the drop target"),
        },
        ["sourceSelector", "targetSelector"],
    ),
    _tool(
        "browser_scroll",
        "Scroll the page or an element",
        {
            "direction": _s("Direction to scroll", enum=["up", "down", "left", "right"]),
            "amount": _n("Amount to scroll in pixels (default 500)"),
            "selector": _s("Optional CSS selector for the element to scroll (defaults to page)"),
        },
        ["direction"],
    ),
    _tool(
        "browser_wait",
        "Wait for a number of seconds",
        {"seconds": _n("Number of seconds to wait")},
        ["seconds"],
    ),
    _tool(
        "browser_wait_for_selector",
        "Wait until an element appears on the page",
        {"selector": _s("CSS selector to wait for"), "timeout": _n("Maximum time to wait in ms (default 10000)")},
        ["selector"],
    ),
    _tool(
        "browser_handle_dialog",
        "Handle browser dialogs (alert, confirm, prompt). Call this BEFORE triggering the dialog.",
        {
            "action": _s('Action to take: "accept" or "dismiss"', enum=["accept", "dismiss"]),
            "promptText": _s("Text to enter for prompt dialogs (optional)"),
        },
        ["action"],
    ),
    _tool(
        "browser_upload_file",
        "Upload a local file to a file input element on the connected page",
        {
            "selector": _s("CSS selector for the file input element"),
            "filePath": _s("Local file path to upload"),
            "fileName": _s("Name to give the file (defaults to the basename of filePath)"),
            "mimeType": _s("MIME type of the file (auto-detected if not provided)"),
        },
        ["selector", "filePath"],
    ),
    # Inspection
    _tool("browser_screenshot", "Take a screenshot of the current page"),
    _tool("browser_snapshot", "Snapshot of the page text and its interactive elements with selectors"),
    _tool("browser_console_messages", "Get console messages captured on the page"),
    _tool(
        "browser_network_requests",
        "Get captured network requests",
        {"filter": _s("Optional URL substring to filter requests")},
    ),
    _tool(
        "browser_evaluate",
        "Execute JavaScript code in the page context and return the result",
        {"code": _s("JavaScript code to execute")},
        ["code"],
    ),
    _tool("browser_get_cookies", "Get cookies for the current page"),
    _tool(
        "browser_set_cookie",
        "Set a cookie for the current page",
        {
            "name": _s("Cookie name"),
            "value": _s("Cookie value"),
            "domain": _s("Cookie domain (optional)"),
            "path": _s('Cookie path (default "/")'),
            "secure": {"type": "boolean", "description": "Secure flag (default false)"},
            "httpOnly": {"type": "boolean", "description": "HttpOnly flag (default false)"},
            "expirationDate": _n("Expiration timestamp in seconds since epoch"),
        },
        ["name", "value"],
    ),
    # Recording
    _tool("browser_start_recording", "Start recording user actions on the connected tab"),
    _tool("browser_stop_recording", "Stop recording (the captured actions are kept until saved or discarded)"),
    _tool(
        "browser_save_recording",
        "Save the captured actions under a name (overwrites an existing recording of that name)",
        {"name": _RECORDING_NAME},
        ["name"],
    ),
    _tool("browser_list_recordings", "List all saved recordings"),
    _tool(
        "browser_get_recording",
        "Get a saved recording by name, including all recorded actions",
        {"name": _RECORDING_NAME},
        ["name"],
    ),
    _tool(
        "browser_replay_recording",
        "Replay a saved recording by name. Actions run in order; failures are reported per action.",
        {"name": _RECORDING_NAME},
        ["name"],
    ),
    _tool("browser_delete_recording", "Delete a saved recording by name", {"name": _RECORDING_NAME}, ["name"]),
]

TOOL_NAMES: frozenset[str] = frozenset(t["name"] for t in TOOL_DEFINITIONS)
