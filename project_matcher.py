"""Jira project name -> Productive project, by tiered name matching.

Jira and Productive share no identifier, so a project is found by its name:
saved mappings first, then exact and near-exact matches, then weighted
similarity, then a crude word-containment pass as the last resort.
"""

from clients import ProductiveClient
from models import NoMatchingProjectError, ProjectMatch
from patterns import Patterns

MAX_PAGES = 10
SCORE_THRESHOLD = 30

NAME_VARIATIONS = (
    "{} project",
    "{} app",
    "{} application",
    "{} website",
    "{} platform",
    "the {}",
)
AFFIX_PREFIXES = ("the", "new", "old")
AFFIX_SUFFIXES = ("ltd", "inc", "corp", "group")
BOUNDARY_SEPARATORS = (" ", "-", "_")


def _normalize(name: str) -> str:
    return name.strip().lower()


def _words(name: str) -> list[str]:
    return [w for w in Patterns.NAME_SEPARATORS.split(_normalize(name)) if w]


def _acronym(words: list[str]) -> str:
    if len(words) == 1:
        return words[0]
    return "".join(w[0] for w in words)


def _strip_affixes(words: list[str]) -> list[str]:
    words = list(words)
    if words and words[0] in AFFIX_PREFIXES:
        words = words[1:]
    if words and words[-1] in AFFIX_SUFFIXES:
        words = words[:-1]
    return words


def _pairs(words: list[str]) -> set[tuple[str, str]]:
    return set(zip(words, words[1:]))


def similarity_score(term: str, name: str) -> int:
    """Weighted similarity between a search term and a project name."""
    t, n = _normalize(term), _normalize(name)
    if not t or not n:
        return 0

    score = 0
    if t in n or n in t:
        score += 50

    tw, nw = _words(t), _words(n)
    shared = set(tw) & set(nw)
    score += 10 * len(shared)

    score += int(10 * min(len(t), len(n)) / max(len(t), len(n)))

    for a in tw:
        for b in nw:
            if a in shared or b in shared or len(a) < 3 or len(b) < 3:
                continue
            if a in b or b in a:
                score += 5

    score += 10 * len(_pairs(tw) & _pairs(nw))

    if len(tw) + len(nw) > 2:
        acronym = _acronym(tw)
        if len(acronym) >= 2 and acronym == _acronym(nw):
            score += 30

    core_t, core_n = _strip_affixes(tw), _strip_affixes(nw)
    if core_t and core_t == core_n and tw != nw:
        score += 25

    return score


def containment_score(term: str, name: str) -> int:
    """Crude score: how many of the term's words appear inside the name."""
    n = _normalize(name)
    return sum(1 for w in _words(term) if len(w) >= 2 and w in n)


class ProjectMatcher:
    """Resolves a Jira project name (or key) to a Productive project.

    settings is the productive config section:
        project_mapping: {"Jira name or key": "productive project id"}
        project_aliases: {"Jira name or key": "Productive project name"}
    """

    def __init__(self, productive: ProductiveClient, settings: dict | None = None, max_pages: int = MAX_PAGES):
        self.productive = productive
        self.settings = settings if settings is not None else {}
        self.max_pages = max_pages

    def resolve(self, search_term: str, project_key: str | None = None) -> ProjectMatch:
        term = search_term.strip()
        print(f"[*] Matching Productive project for '{term}'...")

        match = self._saved_mapping(term, project_key)
        if match:
            print(f"    [+] Saved mapping: {term} -> {match.id}")
            return match

        projects = self._scan()
        print(f"    Scanned {len(projects)} Productive projects")

        for finder in (self._alias, self._exact, self._variation, self._starts_with, self._scored):
            match = finder(term, project_key, projects)
            if match:
                print(f"    [+] {match.tier}: {match.name} (ID: {match.id}, score {match.score})")
                return match

        match = self._crude(term)
        if match:
            print(f"    [!] Low confidence match: {match.name} (ID: {match.id})")
            return match

        raise NoMatchingProjectError(f"No matching project in Productive for '{term}'")

    def _lookup(self, table: str, term: str, project_key: str | None):
        entries = self.settings.get(table) or {}
        for key in (term, project_key):
            if not key:
                continue
            if key in entries:
                return entries[key]
            for saved, value in entries.items():
                if _normalize(saved) == _normalize(key):
                    return value
        return None

    def _saved_mapping(self, term, project_key) -> ProjectMatch | None:
        project_id = self._lookup("project_mapping", term, project_key)
        if project_id is None:
            return None
        return ProjectMatch(id=str(project_id), name=term, score=1000, tier="mapping")

    def _scan(self) -> list[dict]:
        """All projects, page by page, up to max_pages."""
        projects = []
        for page in range(1, self.max_pages + 1):
            batch = self.productive.list_projects(page)
            if not batch:
                break
            projects.extend(batch)
        return projects

    def _alias(self, term, project_key, projects) -> ProjectMatch | None:
        alias = self._lookup("project_aliases", term, project_key)
        if not alias:
            return None
        return self._find_exact(alias, projects, "alias")

    def _exact(self, term, project_key, projects) -> ProjectMatch | None:
        return self._find_exact(term, projects, "exact")

    def _variation(self, term, project_key, projects) -> ProjectMatch | None:
        for pattern in NAME_VARIATIONS:
            match = self._find_exact(pattern.format(term), projects, "variation")
            if match:
                return match
        return None

    def _starts_with(self, term, project_key, projects) -> ProjectMatch | None:
        t = _normalize(term)
        if not t:
            return None
        for project in projects:
            name = _normalize(project["name"])
            if any(name.startswith(t + sep) for sep in BOUNDARY_SEPARATORS):
                return ProjectMatch(id=project["id"], name=project["name"], score=100, tier="starts-with")
        return None

    def _scored(self, term, project_key, projects) -> ProjectMatch | None:
        best, best_score = None, 0
        for project in projects:
            score = similarity_score(term, project["name"])
            if score > best_score:
                best, best_score = project, score
        if best is None or best_score < SCORE_THRESHOLD:
            return None
        return ProjectMatch(id=best["id"], name=best["name"], score=best_score, tier="similarity")

    def _crude(self, term) -> ProjectMatch | None:
        best, best_score = None, 0
        for project in self._scan():
            score = containment_score(term, project["name"])
            if score > best_score:
                best, best_score = project, score
        if best is None:
            return None
        return ProjectMatch(id=best["id"], name=best["name"], score=best_score, tier="word-containment")

    @staticmethod
    def _find_exact(name: str, projects: list[dict], tier: str) -> ProjectMatch | None:
        wanted = _normalize(name)
        for project in projects:
            if _normalize(project["name"]) == wanted:
                return ProjectMatch(id=project["id"], name=project["name"], score=100, tier=tier)
        return None
