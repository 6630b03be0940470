"""Metadata Registry — tests for definition-time metadata storage.

Tests cover:
    - set/get/merge semantics (overwrite, ordered union, absent -> None)
    - MRO resolution to the defining class (override hides base metadata)
    - list_members ordering (bases first, declaration order)
    - Pending marks: stash() is copy-on-write, flush_marks() moves them per class
"""

import functools

from toolhost.core.metadata_registry import (
    MetadataRegistry, flush_marks, pending_marks, stash,
)


class Base:
    def second(self): ...
    def first(self): ...


class Child(Base):
    def third(self): ...


class Override(Base):
    def first(self): ...


def test_get_absent_key_returns_none():
    reg = MetadataRegistry()
    assert reg.get(Base, "first", "capability") is None


def test_set_overwrites_silently():
    reg = MetadataRegistry()
    reg.set(Base, None, "service", 1)
    reg.set(Base, None, "service", 2)
    assert reg.get(Base, None, "service") == 2


def test_merge_is_ordered_union():
    reg = MetadataRegistry()
    reg.merge(Base, "first", "security", [{"type": "a"}, {"type": "b"}])
    merged = reg.merge(Base, "first", "security", [{"type": "b"}, {"type": "c"}])
    assert merged == [{"type": "a"}, {"type": "b"}, {"type": "c"}]


def test_resolve_member_follows_mro_to_defining_class():
    reg = MetadataRegistry()
    reg.set(Base, "first", "capability", "tool")
    assert reg.resolve(Child, "first", "capability") == "tool"


def test_override_hides_base_metadata():
    reg = MetadataRegistry()
    reg.set(Base, "first", "capability", "tool")
    assert reg.resolve(Override, "first", "capability") is None


def test_resolve_class_level_follows_mro():
    reg = MetadataRegistry()
    reg.set(Base, None, "auth", "required")
    assert reg.resolve(Child, None, "auth") == "required"
    assert reg.get(Child, None, "auth") is None


def test_resolve_unknown_member_returns_none():
    reg = MetadataRegistry()
    assert reg.resolve(Child, "missing", "capability") is None


def test_list_members_bases_first_in_declaration_order():
    reg = MetadataRegistry()
    for owner, name in ((Base, "first"), (Base, "second"), (Child, "third")):
        reg.set(owner, name, "capability", name)
    assert reg.list_members(Child, "capability") == ["second", "first", "third"]


def test_list_members_judges_overrides_by_overriding_definition():
    reg = MetadataRegistry()
    reg.set(Base, "first", "capability", "tool")
    reg.set(Base, "second", "capability", "tool")
    assert reg.list_members(Override, "capability") == ["second"]


def test_clear_removes_everything():
    reg = MetadataRegistry()
    reg.set(Base, None, "service", True)
    reg.clear()
    assert reg.get(Base, None, "service") is None


def test_stash_is_copy_on_write_through_wraps():
    def original(): ...
    stash(original, "capability", "tool")

    @functools.wraps(original)
    def wrapper(): ...
    stash(wrapper, "auth", "required")

    assert pending_marks(original) == [("capability", "tool", False)]
    assert pending_marks(wrapper) == [
        ("capability", "tool", False), ("auth", "required", False),
    ]


def test_flush_marks_moves_marks_for_class_members():
    class Holder:
        def run(self): ...
        def other(self): ...

    stash(Holder.run, "capability", "tool")
    stash(Holder.run, "security", [{"type": "a"}], merge=True)
    stash(Holder.run, "security", [{"type": "b"}], merge=True)
    reg = MetadataRegistry()

    assert flush_marks(reg, Holder) == 3
    assert reg.get(Holder, "run", "capability") == "tool"
    assert reg.get(Holder, "run", "security") == [{"type": "a"}, {"type": "b"}]
    assert reg.get(Holder, "other", "capability") is None
