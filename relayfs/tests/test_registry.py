import pytest

import relayfs.registry as registry
from relayfs.registry import Verb


def test_verb_classes():
    assert registry.ALLOW_LIST[Verb.GET] == {
        "access",
        "lstat",
        "stat",
        "readFile",
        "readdir",
        "readlink",
        "realpath",
        "watch",
        "opendir",
        "exists",
        "existsSync",
    }
    assert registry.ALLOW_LIST[Verb.DELETE] == {"unlink", "rmdir"}
    assert "writeFile" in registry.ALLOW_LIST[Verb.POST]
    assert "writeFile" in registry.ALLOW_LIST[Verb.PUT]
    assert "mkdir" in registry.ALLOW_LIST[Verb.POST]
    assert "chmod" in registry.ALLOW_LIST[Verb.PUT]


@pytest.mark.parametrize(
    "verb,name",
    [
        (Verb.GET, "unlink"),
        (Verb.GET, "writeFile"),
        (Verb.DELETE, "readFile"),
        (Verb.PUT, "mkdir"),
        (Verb.POST, "eval"),
    ],
)
def test_not_allowed(verb, name):
    assert not registry.is_allowed(verb, name)


def test_lookup():
    assert registry.lookup("readFile").result_field == "buffer"
    assert registry.lookup("readdir").result_field == "dirs"
    assert registry.lookup("exists").result_field == "exists"
    assert registry.lookup("stat").result_field == "data"

    assert registry.lookup("eval") is None
    assert registry.lookup(None) is None


def test_canonical_verb():
    assert registry.lookup("writeFile").verb == Verb.POST
    assert registry.lookup("appendFile").verb == Verb.PUT
    assert registry.lookup("rmdir").verb == Verb.DELETE


def test_mutating():
    assert registry.is_mutating("writeFile")
    assert registry.is_mutating("unlink")
    assert not registry.is_mutating("readFile")
    assert not registry.is_mutating("eval")
    assert not registry.is_mutating(None)


def test_body_verbs():
    assert Verb.POST.has_body
    assert Verb.PUT.has_body
    assert not Verb.GET.has_body
    assert not Verb.DELETE.has_body


def test_path_params_are_params():
    for op in registry.OPERATIONS.values():
        assert set(op.path_params) <= set(op.params)
