from __future__ import annotations

import textwrap

from typeinference.analysis.docblock import DocblockStyle, add_type_tag, parse_docblock
from typeinference.analysis.model import RETURN_SLOT, FunctionIdentity, SourceKind
from typeinference.analysis.pipeline import collect
from typeinference.config import build_settings


def test_parse_sphinx_tags() -> None:
    tags = parse_docblock(
        textwrap.dedent(
            """
            Load a user.

            :param int user_id: primary key
            :param name: display name
            :type name: str or None
            :rtype: User
            """
        )
    )
    assert tags.style is DocblockStyle.SPHINX
    assert tags.param_types == {"user_id": "int", "name": "str or None"}
    assert tags.mentioned_params == {"user_id", "name"}
    assert tags.return_type == "User"


def test_parse_epytext_tags() -> None:
    tags = parse_docblock("Scale a value.\n\n@param factor: how much\n@type factor: float\n@rtype: float\n")
    assert tags.style is DocblockStyle.EPYTEXT
    assert tags.param_types == {"factor": "float"}
    assert tags.return_type == "float"


def test_parse_google_sections() -> None:
    tags = parse_docblock(
        textwrap.dedent(
            """
            Send a message.

            Args:
                recipient (str): who gets it
                retries (int, optional): how often to retry
                payload: the body,
                    continued on the next line
            Returns:
                bool: whether it was delivered
            """
        )
    )
    assert tags.style is DocblockStyle.GOOGLE
    assert tags.param_types == {"recipient": "str", "retries": "int"}
    assert tags.mentioned_params == {"recipient", "retries", "payload"}
    assert tags.return_type == "bool"


def test_parse_without_tags() -> None:
    tags = parse_docblock("Just prose.")
    assert tags.style is None
    assert not tags.param_types
    assert not tags.documents_return


def test_add_sphinx_tag_after_matching_param() -> None:
    body = "Load a user.\n\n    :param user_id: primary key\n    :param name: display name\n    "
    updated = add_type_tag(
        body, type_text="int", param_name="user_id", default_style=DocblockStyle.EPYTEXT, indent="    "
    )
    assert updated == (
        "Load a user.\n\n"
        "    :param user_id: primary key\n"
        "    :type user_id: int\n"
        "    :param name: display name\n"
        "    "
    )


def test_add_tag_to_one_line_docstring_uses_default_style() -> None:
    updated = add_type_tag("Add numbers.", type_text="int", param_name=None, default_style=DocblockStyle.SPHINX, indent="    ")
    assert updated == "Add numbers.\n\n    :rtype: int\n    "

    epytext = add_type_tag("Add numbers.", type_text="int", param_name="a", default_style=DocblockStyle.EPYTEXT, indent="        ")
    assert epytext == "Add numbers.\n\n        @type a: int\n        "


def test_add_google_entry_types_existing_param() -> None:
    body = "Send it.\n\n    Args:\n        recipient: who gets it\n    "
    updated = add_type_tag(body, type_text="str", param_name="recipient", default_style=DocblockStyle.SPHINX, indent="    ")
    assert "        recipient (str): who gets it\n" in updated
    assert parse_docblock(updated).param_types == {"recipient": "str"}


def test_add_google_returns_section() -> None:
    body = "Send it.\n\n    Args:\n        recipient (str): who gets it\n    "
    updated = add_type_tag(body, type_text="bool", param_name=None, default_style=DocblockStyle.SPHINX, indent="    ")
    assert parse_docblock(updated).return_type == "bool"
    assert updated.endswith("    Returns:\n        bool:\n    ")


def test_add_tag_is_idempotent() -> None:
    body = "Load.\n\n    :type user_id: int\n    "
    assert add_type_tag(body, type_text="str", param_name="user_id", default_style=DocblockStyle.SPHINX, indent="    ") == body


def test_docblock_evidence_resolves_classes_through_the_catalog(write_project, tmp_path) -> None:
    vendor = tmp_path / "site-packages" / "thirdparty"
    vendor.mkdir(parents=True)
    (vendor / "clients.py").write_text("class HttpClient:\n    pass\n", encoding="utf-8")
    root = write_project(
        {
            "app/models.py": "class User:\n    pass\n",
            "app/api.py": '''
                from app import models


                def fetch(client, user_id, cache):
                    """Fetch a user.

                    :param HttpClient client: transport
                    :param user_id: primary key
                    :type user_id: int
                    :type cache: dict[str, models.User] or None
                    :rtype: User
                    """


                def noisy(value):
                    """:type value: Mystery"""
            ''',
        }
    )
    settings = build_settings(root, overrides={"sources": ["docblock"], "catalog": [str(tmp_path / "site-packages")]})
    registry = collect(settings).registry
    fetch = registry.get(FunctionIdentity("app.api", None, "fetch"))

    def documented(slot) -> set[str]:
        return {item.inferred_type.render() for item in fetch.evidence_for(slot) if item.source_kind is SourceKind.DOCBLOCK}

    assert documented(0) == {"thirdparty.clients.HttpClient"}
    assert documented(1) == {"int"}
    assert documented(2) == {"dict[str, app.models.User] | None"}
    assert documented(RETURN_SLOT) == {"app.models.User"}
    assert fetch.documented_params == frozenset({"client", "user_id", "cache"})
    assert fetch.documents_return
    assert registry.get(FunctionIdentity("app.api", None, "noisy")).evidence_for(0) == ()
