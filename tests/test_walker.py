from __future__ import annotations

import pytest

from pstextract.errors import ContainerError
from pstextract.extraction.walker import FolderWalker, aggregate_recipients, extract_container

from fakes import Boom, BrokenBodyMessage, FakeFolder, FakeMessage, FakeReader


def _tree() -> FakeFolder:
    return FakeFolder(
        display_name="Top",
        subfolders=[
            FakeFolder(
                display_name="Inbox",
                messages=[FakeMessage(subject="one", body="b1", attachments=[{"3704": "a.pdf", "3701": b"%PDF1"}])],
                subfolders=[FakeFolder(display_name="Deep", messages=[FakeMessage(subject="deep", body="b3")])],
            ),
            Boom("subfolder record missing"),
            FakeFolder(display_name="Sent Items", messages=[FakeMessage(subject="two", body="b2")]),
        ],
        messages=[FakeMessage(subject="root", body="b0")],
    )


def test_walk_visits_reachable_tree_in_preorder_despite_sibling_failure():
    walker = FolderWalker("archive")
    walker.walk(_tree(), "")
    assert [r.source for r in walker.records] == [
        "archive::Top/Inbox/Deep",
        "archive::Top/Inbox",
        "archive::Top/Sent Items",
        "archive::Top",
    ]
    assert [str(w) for w in walker.warnings] == ["Skipping subfolder nid=1 in Top: subfolder record missing"]
    assert [(a.folder_path, a.name) for a in walker.attachments] == [("Inbox", "a.pdf")]


def test_listing_failures_are_isolated():
    root = FakeFolder(
        display_name="Top",
        subfolders=[
            FakeFolder(display_name="NoSubs", fail_subfolders=True, messages=[FakeMessage(body="kept")]),
            FakeFolder(display_name="NoMsgs", fail_messages=True),
        ],
    )
    walker = FolderWalker("p")
    walker.walk(root)
    assert [r.body for r in walker.records] == ["kept"]
    contexts = [w.context for w in walker.warnings]
    assert contexts == ["Skipping subfolders for Top/NoSubs", "Skipping contents for Top/NoMsgs"]


def test_message_level_failures():
    root = FakeFolder(
        display_name="Top",
        messages=[
            None,
            Boom("message node corrupt"),
            BrokenBodyMessage(subject="broken"),
            FakeMessage(body="ok", fail_properties=True),
        ],
    )
    walker = FolderWalker("p")
    walker.walk(root)
    assert [r.body for r in walker.records] == ["ok"]
    contexts = [w.context for w in walker.warnings]
    assert contexts == [
        "Skipping message nid=1 in Top",
        "Skipping message record nid=2 in Top",
        "Unable to read properties for nid=3 in Top",
    ]


def test_enrichment_fills_empty_fields():
    msg = FakeMessage(
        body_html="<b>from html</b>",
        props={"Sender entry name": "Alice", "Subject": "subj"},
        recipient_list=[{"3003": "bob@x.com"}, {"Email address": "carol@x.com"}, {"nothing": 1}],
    )
    walker = FolderWalker("p")
    walker.walk(FakeFolder(display_name="Top", messages=[msg]))
    rec = walker.records[0]
    assert rec.from_ == "Alice"
    assert rec.to == "bob@x.com; carol@x.com; "
    assert rec.subject == "subj"
    assert rec.body == "from html"


def test_enrichment_prefers_body_property_and_survives_recipient_failure():
    msg = FakeMessage(props={"1000": b"plain from props"}, fail_recipients=True)
    walker = FolderWalker("p")
    walker.walk(FakeFolder(display_name="Top", messages=[msg]))
    rec = walker.records[0]
    assert rec.body == "plain from props"
    assert rec.to == ""
    assert [w.context for w in walker.warnings] == ["Unable to read recipients for nid=0 in Top"]


def test_aggregate_recipients():
    assert aggregate_recipients([{"0c1f": "a@x"}, {"3001": "B"}]) == "a@x; B"
    assert aggregate_recipients(None) == ""


def test_blank_folder_name_defaults():
    walker = FolderWalker("p")
    walker.walk(FakeFolder(display_name="", messages=[FakeMessage(body="x")]))
    assert walker.records[0].source == "p::Folder"


def test_extract_container_success_and_sparse_container():
    reader = FakeReader({b"full": _tree(), b"empty": FakeFolder(display_name="Top")})
    result = extract_container(reader, b"full", "archive")
    assert len(result.records) == 4
    assert len(result.warnings) == 1
    # nothing found and nothing went wrong: a sparse, valid container
    assert extract_container(reader, b"empty", "empty").records == []


def test_extract_container_fails_when_nothing_recovered():
    reader = FakeReader({b"bad": FakeFolder(display_name="Top", fail_messages=True), b"noroot": None})
    with pytest.raises(ContainerError) as exc:
        extract_container(reader, b"bad", "bad")
    assert "Skipping contents for Top: contents table unreadable" in str(exc.value)
    with pytest.raises(ContainerError):
        extract_container(reader, b"noroot", "noroot")
    with pytest.raises(Boom):
        extract_container(reader, b"garbage", "garbage")
