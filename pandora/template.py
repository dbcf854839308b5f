from importlib import resources
from typing import Any, Callable, MutableMapping

from jinja2 import BaseLoader, ChoiceLoader, Environment, PackageLoader, PrefixLoader, StrictUndefined, Template


class TemplateLoader(BaseLoader):
    """Loads ``templates/<lang>/<name>`` from a package, one prefix per language."""

    def __init__(self, package_name: str, default_lang: str = 'en'):
        self.default_lang = default_lang
        self.loader_map: dict[str, list[BaseLoader]] = {}
        for lang in self._available_langs(package_name):
            self.loader_map[lang] = [PackageLoader(package_name, package_path=f"templates/{lang}")]
        self._loader = self._build_jinja_loader(self.loader_map)

    @staticmethod
    def _available_langs(package_name: str) -> list[str]:
        root = resources.files(package_name).joinpath("templates")
        if not root.is_dir():
            return []
        return sorted(entry.name for entry in root.iterdir() if entry.is_dir() and not entry.name.startswith('_'))

    @staticmethod
    def _build_jinja_loader(loader_map: dict[str, list[BaseLoader]]):
        choice_loaders = dict((key, ChoiceLoader(loaders)) for (key, loaders) in loader_map.items())
        return PrefixLoader(choice_loaders)

    def get_source(self, environment: Environment, template: str) -> tuple[str, str | None, Callable[[], bool] | None]:
        return self._loader.get_source(environment, template)

    def list_templates(self) -> list[str]:
        return self._loader.list_templates()

    def add_loaders(self, lang: str, *loaders: BaseLoader):
        """Register extra loaders for *lang*, taking priority over packaged templates."""
        self.loader_map[lang] = list(loaders) + self.loader_map.get(lang, [])
        self._loader = self._build_jinja_loader(self.loader_map)


class TemplateEnvironment(Environment):
    def __init__(self, package_name: str, default_lang: str | None = None, **options: Any):
        self.loader = TemplateLoader(package_name, default_lang or 'en')
        options.setdefault('trim_blocks', True)
        options.setdefault('lstrip_blocks', True)
        options.setdefault('keep_trailing_newline', False)
        options.setdefault('undefined', StrictUndefined)
        super().__init__(loader=self.loader, **options)

    def add_loaders(self, lang: str, *loaders: BaseLoader):
        self.loader.add_loaders(lang, *loaders)

    def load_template(self, name: str, lang: str | None = None, globals: MutableMapping[str, Any] | None = None) -> Template:
        default_lang = self.loader.default_lang

        # Build candidate languages list by priority
        candidate_langs: list[str] = []
        for candidate in (lang, default_lang, 'en'):
            if candidate and candidate not in candidate_langs:
                candidate_langs.append(candidate)
        for candidate in self.loader.loader_map:
            if candidate not in candidate_langs:
                candidate_langs.append(candidate)

        template_names = [f"{candidate}/{name}" for candidate in candidate_langs]
        return self.select_template(names=template_names, globals=globals)
