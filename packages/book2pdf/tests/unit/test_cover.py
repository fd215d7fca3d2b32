from book2pdf.cover import SiteInfo, build_cover_html, site_info_from_html


def test_site_info_title_and_logo():
    html = """<html><head><title> Acme
      Docs </title></head><body>
      <nav class="navbar"><a class="navbar__logo" href="/"><img src="/img/logo.svg" alt="Acme logo"></a></nav>
    </body></html>"""
    info = site_info_from_html(html, "https://docs.example.com/docs/intro")
    assert info.title == "Acme Docs"
    assert info.logo_url == "https://docs.example.com/img/logo.svg"


def test_site_info_falls_back_to_h1_then_default():
    info = site_info_from_html("<body><h1>Handbook</h1></body>", "https://x.org/")
    assert info.title == "Handbook"
    assert info.logo_url is None
    assert site_info_from_html("<body></body>", "https://x.org/").title == "Documentation"


def test_cover_html_escapes_content():
    info = SiteInfo(title="<Tags> & more", url="https://x.org/?a=1&b=2", logo_url='https://x.org/"l.png')
    html = build_cover_html(info)
    assert "&lt;Tags&gt; &amp; more" in html
    assert "https://x.org/?a=1&amp;b=2" in html
    assert 'src="https://x.org/&quot;l.png"' in html
    assert "<Tags>" not in html


def test_cover_html_without_logo():
    html = build_cover_html(SiteInfo(title="T", url="https://x.org/"))
    assert "<img" not in html
