import os


def test_markdown_page_renders_wikilink(client):
    resp = client.get("/a.md")
    assert resp.status_code == 200
    assert resp.mimetype == "text/html"
    body = resp.get_data(as_text=True)
    assert '<h1>Hi <a href="/b.md">b</a></h1>' in body
    assert body.startswith("<!DOCTYPE html>")
    assert "<title>a - para</title>" in body
    assert 'class="file-tree"' in body
    assert "new WebSocket" in body


def test_fragment_request_gets_title_and_body_only(client):
    resp = client.get("/a.md", headers={"HX-Request": "true"})
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "text/html; charset=utf-8"
    body = resp.get_data(as_text=True)
    assert body.startswith("<title>a - para</title>")
    assert "<!DOCTYPE html>" not in body
    assert "file-tree" not in body
    assert '<a href="/b.md">b</a>' in body


def test_page_includes_fresh_sidebar(client, notes_root):
    assert "late.md" not in client.get("/a.md").get_data(as_text=True)
    (notes_root / "projects" / "late.md").write_text("# Late")
    assert 'href="/projects/late.md"' in client.get("/a.md").get_data(as_text=True)


def test_edits_show_up_on_next_request(client, notes_root):
    (notes_root / "b.md").write_text("# Changed\n")
    assert "<h1>Changed</h1>" in client.get("/b.md").get_data(as_text=True)


def test_sidebar_hides_dot_and_underscore_entries(client):
    body = client.get("/").get_data(as_text=True)
    tree = body[body.index('<nav class="file-tree">'):body.index("</nav>", body.index('<nav class="file-tree">'))]
    assert "_private" not in tree
    assert ".obsidian" not in tree
    assert "_draft" not in tree
    assert ".secret" not in tree
    assert 'href="/projects/plan.md"' in tree
    assert 'href="/empty/"' in tree


def test_directory_without_slash_redirects_permanently(client):
    resp = client.get("/projects")
    assert resp.status_code == 308
    assert resp.headers["Location"].endswith("/projects/")


def test_directory_listing(client):
    resp = client.get("/projects/")
    assert resp.status_code == 200
    body = resp.get_data(as_text=True)
    assert "<title>projects - para</title>" in body
    assert '<li><a href="..">..</a></li>' in body
    assert '<li><a href="plan.md">plan.md</a></li>' in body
    assert "_draft" not in body.split("<main")[1]


def test_root_listing_has_no_parent_link(client):
    resp = client.get("/")
    assert resp.status_code == 200
    body = resp.get_data(as_text=True)
    assert "<title>Notes - para</title>" in body
    assert 'class="file-listing"' in body
    assert 'href=".."' not in body


def test_readme_preferred_over_index(client):
    body = client.get("/with-readme/").get_data(as_text=True)
    assert "Readme page" in body
    assert "Index page" not in body
    assert "<title>Notes - para</title>" in body


def test_index_used_without_readme(client):
    body = client.get("/only-index/").get_data(as_text=True)
    assert "Index only" in body


def test_root_readme_replaces_listing(client, notes_root):
    (notes_root / "README.md").write_text("# Welcome\n")
    body = client.get("/").get_data(as_text=True)
    assert "<h1>Welcome</h1>" in body
    assert 'class="file-listing"' not in body


def test_binary_file_served_with_derived_type(client):
    resp = client.get("/img.png")
    assert resp.status_code == 200
    assert resp.mimetype == "image/png"
    assert resp.data.startswith(b"\x89PNG")


def test_unknown_extension_is_octet_stream(client):
    resp = client.get("/blob.zzunknown")
    assert resp.status_code == 200
    assert resp.mimetype == "application/octet-stream"


def test_missing_path_is_404(client):
    assert client.get("/nope.md").status_code == 404


def test_traversal_is_rejected(client):
    resp = client.get("/../../etc/passwd")
    assert resp.status_code in (403, 404)
    assert b"root:" not in resp.data


def test_encoded_traversal_is_rejected(client):
    resp = client.get("/%2e%2e/%2e%2e/etc/passwd")
    assert resp.status_code in (403, 404)
    assert b"root:" not in resp.data


def test_symlink_out_of_root_is_forbidden(client, notes_root, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.md").write_text("# top secret")
    os.symlink(outside, notes_root / "escape")
    resp = client.get("/escape/secret.md")
    assert resp.status_code == 403
    assert b"top secret" not in resp.data


def test_symlinked_image_out_of_root_is_forbidden(client, notes_root, tmp_path):
    (tmp_path / "private.png").write_bytes(b"\x89PNGsecret")
    os.symlink(tmp_path / "private.png", notes_root / "shared.png")
    assert client.get("/shared.png").status_code == 403


def test_undecodable_note_is_500(client, notes_root):
    (notes_root / "bad.md").write_bytes(b"\xff\xfe\xfa")
    assert client.get("/bad.md").status_code == 500


def test_known_font_is_served(client):
    resp = client.get("/fonts/UbuntuMono-Regular.ttf")
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "font/ttf"
    assert resp.data == b"fake-font"


def test_unknown_font_is_404(client):
    assert client.get("/fonts/Comic.ttf").status_code == 404
    assert client.get("/fonts/../a.md").status_code == 404


def test_embedded_font_missing_from_bundle_is_404(client):
    assert client.get("/fonts/UbuntuMono-Bold.ttf").status_code == 404


def test_undecodable_file_name_does_not_break_pages(client, notes_root):
    with open(os.fsencode(notes_root / "projects") + b"/caf\xe9.md", "wb") as f:
        f.write(b"# cafe\n")
    resp = client.get("/a.md")
    assert resp.status_code == 200
    assert 'href="/projects/caf%E9.md"' in resp.get_data(as_text=True)
    assert client.get("/projects/").status_code == 200
