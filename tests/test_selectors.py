from __future__ import annotations

import logging


def _doc(html: str):
    from bs4 import BeautifulSoup

    return BeautifulSoup(html, "html.parser")


def test_stable_id_wins() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc('<div><button id="save" class="btn" data-testid="save-btn">Save</button></div>')
    el = doc.select_one("button")
    assert generate_selector(el) == "#save"


def test_generated_ids_are_skipped() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector, is_stable_id

    assert not is_stable_id("1abc")
    assert not is_stable_id(":r0:")
    assert not is_stable_id("")
    assert is_stable_id("login-form")

    doc = _doc('<button id="1abc" class="primary">A</button><button id=":r1:" data-testid="ok">B</button>')
    first, second = doc.select("button")
    assert generate_selector(first) == ".primary"
    assert generate_selector(second) == '[data-testid="ok"]'


def test_test_attributes_in_priority_order() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc('<span data-cy="price" data-test="amount">9</span><span data-cy="price">10</span>')
    first = doc.select("span")[0]
    # data-cy is shared, so the next unique test attribute is used.
    assert generate_selector(first) == '[data-test="amount"]'


def test_single_class_then_class_combination() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc(
        '<a class="btn big">1</a>'
        '<a class="btn">2</a>'
        '<a class="big">3</a>'
        '<a class="btn secondary">4</a>'
    )
    links = doc.select("a")
    assert generate_selector(links[0]) == ".btn.big"
    assert generate_selector(links[3]) == ".secondary"


def test_state_classes_are_ignored() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc('<ul id="nav"><li class="active">a</li><li>b</li></ul>')
    first = doc.select("li")[0]
    assert generate_selector(first) == "#nav > li:nth-child(1)"


def test_tag_attribute_for_inputs_and_buttons() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc(
        '<form>'
        '<input name="q"><input name="page">'
        '<input placeholder="Email"><input placeholder="Password">'
        '<button aria-label="Close">x</button><button aria-label="Open">o</button>'
        '</form>'
    )
    inputs = doc.select("input")
    buttons = doc.select("button")
    assert generate_selector(inputs[0]) == 'input[name="q"]'
    assert generate_selector(inputs[2]) == 'input[placeholder="Email"]'
    assert generate_selector(buttons[0]) == 'button[aria-label="Close"]'


def test_attribute_values_are_quoted() -> None:
    from mcp_servers.bronco.recording.selectors import css_string, generate_selector

    assert css_string('say "hi"') == '"say \\"hi\\""'
    doc = _doc('<input name=\'q"x\'><input name="other">')
    el = doc.select("input")[0]
    sel = generate_selector(el)
    assert doc.select_one(sel) is el


def test_positional_path_uses_true_child_index() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc('<div id="wrap"><span>x</span><p>1</p><p>2</p></div>')
    second_p = doc.select("p")[1]
    sel = generate_selector(second_p)
    assert sel == "#wrap > p:nth-child(3)"
    assert doc.select(sel) == [second_p]


def test_positional_path_without_ancestor_id() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc("<body><div><p>a</p></div><div><p>b</p></div></body>")
    target = doc.select("p")[1]
    sel = generate_selector(target)
    assert sel == "div:nth-child(2) > p"
    assert doc.select(sel) == [target]


def test_ambiguous_positional_path_is_returned_with_warning(caplog) -> None:
    from mcp_servers.bronco.recording.selectors import MAX_PATH_DEPTH, generate_selector

    block = "<section><div><div><div><div><b>x</b></div></div></div></div></section>"
    doc = _doc(block + block)
    target = doc.select("b")[0]
    with caplog.at_level(logging.WARNING, logger="mcp.bronco.selectors"):
        sel = generate_selector(target)
    assert sel == "div > div > div > div > b"
    assert len(sel.split(" > ")) == MAX_PATH_DEPTH
    assert "ambiguous_selector" in caplog.text


def test_generation_is_deterministic_and_resolves_to_target() -> None:
    from mcp_servers.bronco.recording.selectors import generate_selector

    doc = _doc(
        '<main><form id="login"><label>User</label><input name="user">'
        '<button class="btn">Go</button><button class="btn">Reset</button></form></main>'
    )
    for el in doc.select("input, button, label"):
        first = generate_selector(el)
        assert first == generate_selector(el)
        assert doc.select(first) == [el]
