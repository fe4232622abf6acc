from jape.check.source import Symbol, load_package, walk_shallow
from jape.config import DEFAULT_EXCLUDE


class TestLoadPackage:
    def test_parses_modules(self, write_package):
        root = write_package({"server.py": "x = 1\n", "client.py": "y = 2\n"})
        package = load_package(root)
        assert sorted(package.modules) == ["client", "server"]
        assert package.errors == {}

    def test_syntax_error_recorded_and_skipped(self, write_package):
        root = write_package({"ok.py": "x = 1\n", "bad.py": "def broken(:\n    pass\n"})
        package = load_package(root)
        assert sorted(package.modules) == ["ok"]
        error = package.errors[str(root / "bad.py")]
        assert error.startswith("SyntaxError: ")
        assert error.endswith("(line 1)")

    def test_default_exclude(self, write_package):
        root = write_package({
            "server.py": "x = 1\n",
            "test_server.py": "x = 2\n",
            "server_test.py": "x = 3\n",
            "conftest.py": "x = 4\n",
        })
        package = load_package(root, DEFAULT_EXCLUDE)
        assert sorted(package.modules) == ["server"]

    def test_exclude_directory_pattern(self, write_package):
        root = write_package({"api/server.py": "x = 1\n", "migrations/0001.py": "x = 2\n"})
        package = load_package(root, ["migrations/*"])
        assert sorted(package.modules) == ["api.server"]

    def test_hidden_and_venv_dirs_skipped(self, write_package):
        root = write_package({"app.py": "x = 1\n", ".venv/lib.py": "x = 2\n", "venv/other.py": "x = 3\n"})
        package = load_package(root)
        assert sorted(package.modules) == ["app"]

    def test_single_file(self, write_package):
        root = write_package({"app.py": "x = 1\n"})
        package = load_package(root / "app.py")
        assert sorted(package.modules) == ["app"]


class TestModuleNames:
    def test_package_root_prefixes_names(self, write_package):
        root = write_package({
            "shop/__init__.py": "",
            "shop/models.py": "class Pet:\n    pass\n",
            "shop/api.py": "from .models import Pet\n",
        })
        package = load_package(root / "shop")
        assert sorted(package.modules) == ["shop", "shop.api", "shop.models"]
        assert package.modules["shop"].is_package
        assert package.modules["shop.api"].imports["Pet"] == "shop.models.Pet"

    def test_relative_import_resolves_class(self, write_package):
        root = write_package({
            "shop/__init__.py": "",
            "shop/models.py": "class Pet:\n    pass\n",
            "shop/api.py": "from .models import Pet\n",
        })
        package = load_package(root / "shop")
        symbol = package.resolve_name(package.modules["shop.api"], "Pet")
        assert symbol.kind == "class"
        assert symbol.qualname == "shop.models.Pet"

    def test_unknown_import_is_external(self, write_package):
        root = write_package({"app.py": "from jape import Client\nimport requests\n"})
        package = load_package(root)
        module = package.modules["app"]
        assert package.resolve_name(module, "Client").kind == "external"
        assert package.resolve_name(module, "Client").qualname == "jape.Client"
        assert package.resolve_name(module, "requests").qualname == "requests"

    def test_member_of_module_and_external(self, write_package):
        root = write_package({
            "shop/__init__.py": "",
            "shop/models.py": "class Pet:\n    pass\n",
        })
        package = load_package(root / "shop")
        pet = package.member(Symbol("module", "shop.models"), "Pet")
        assert (pet.kind, pet.qualname) == ("class", "shop.models.Pet")
        missing = package.member(Symbol("module", "shop.models"), "Owner")
        assert (missing.kind, missing.qualname) == ("external", "shop.models.Owner")
        client = package.member(Symbol("external", "jape"), "Client")
        assert (client.kind, client.qualname) == ("external", "jape.Client")


class TestClasses:
    def test_methods_and_inheritance(self, write_package):
        root = write_package({
            "app.py": """
                class Base:
                    def ping(self):
                        pass


                class Child(Base):
                    label: str

                    def __init__(self):
                        self.count = 0
            """,
        })
        package = load_package(root)
        child = package.classes["app.Child"]
        method, owner = package.find_method(child, "ping")
        assert method.name == "ping"
        assert owner.qualname == "app.Base"
        assert [c.qualname for c in package.mro(child)] == ["app.Child", "app.Base"]
        assert "label" in child.fields
        assert "count" in child.assigned

    def test_conditional_definitions_indexed(self, write_package):
        root = write_package({
            "app.py": """
                try:
                    from fast import handler
                except ImportError:
                    def handler(jc):
                        pass
            """,
        })
        package = load_package(root)
        module = package.modules["app"]
        assert module.imports["handler"] == "fast.handler"
        assert "handler" in module.definitions


class TestWalkShallow:
    def test_does_not_enter_nested_definitions(self, write_package):
        root = write_package({
            "app.py": """
                def outer():
                    a = 1

                    def inner():
                        b = 2
            """,
        })
        package = load_package(root)
        outer = package.modules["app"].tree.body[0]
        names = {getattr(n, "id", None) for n in walk_shallow(outer.body)}
        assert "a" in names
        assert "b" not in names
