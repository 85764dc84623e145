from bs4 import BeautifulSoup as BS

from utils.extractors import (
    all_texts,
    extract_jsonld,
    first_attr,
    first_matching,
    first_text,
    flatten,
    looks_like_challenge,
)

TILE = """
<article>
  <h2><a class="title" href="/jobs/~01">  Python Dev  </a></h2>
  <span class="empty">   </span>
  <span class="budget">$500</span>
  <div class="skills"><span>Python</span><span></span><span>Django</span></div>
</article>
"""


def _node():
    return BS(TILE, "lxml").article


def test_first_text_skips_empty_and_missing_candidates():
    node = _node()
    assert first_text(node, (".missing", ".empty", ".budget")) == "$500"
    assert first_text(node, ("a.title",)) == "Python Dev"
    assert first_text(node, (".missing",)) == ""
    assert first_text(None, ("a",)) == ""


def test_invalid_selector_degrades_to_no_match():
    node = _node()
    assert first_text(node, ("a[[[broken", ".budget")) == "$500"
    assert first_attr(node, ("::nope", "a.title"), "href") == "/jobs/~01"
    assert all_texts(node, ("div[", ".skills span")) == ["Python", "Django"]


def test_first_attr():
    node = _node()
    assert first_attr(node, ("a.title",), "href") == "/jobs/~01"
    assert first_attr(node, ("a.title",), "data-missing") == ""


def test_all_texts_keeps_order_and_duplicates():
    node = BS("<div><i>a</i><i>b</i><i>a</i></div>", "lxml").div
    assert all_texts(node, ("b", "i")) == ["a", "b", "a"]
    assert all_texts(node, ("b",)) == []


def test_first_matching_uses_first_selector_with_matches():
    soup = BS("<div><p class='x'>1</p><p class='y'>2</p><p class='y'>3</p></div>", "lxml")
    sel, nodes = first_matching(soup, (".z", ".y", "p"))
    assert sel == ".y"
    assert [n.get_text() for n in nodes] == ["2", "3"]
    assert first_matching(soup, (".z",)) == (None, [])


def test_flatten_joins_scalar_lists():
    out = flatten({"skills": ["Python", "Django"], "client_info": {"name": "Acme"}, "budget": None})
    assert out == {"skills": "Python; Django", "client_info.name": "Acme", "budget": ""}


def test_extract_jsonld_finds_job_posting_in_graph():
    html = """
    <script type="application/ld+json">{not json</script>
    <script type="application/ld+json">
      {"@graph": [{"@type": "WebPage"},
                  {"@type": "JobPosting", "title": "Dev",
                   "hiringOrganization": {"name": "Acme"}}]}
    </script>
    """
    data = extract_jsonld(BS(html, "lxml"))
    assert data["title"] == "Dev"
    assert data["hiringOrganization.name"] == "Acme"
    assert extract_jsonld(BS("<p>none</p>", "lxml")) == {}


def test_looks_like_challenge():
    assert looks_like_challenge("<h1>Access Denied</h1>")
    assert looks_like_challenge("please complete the CAPTCHA")
    assert not looks_like_challenge("<p>Python jobs</p>")
    assert not looks_like_challenge(None)
