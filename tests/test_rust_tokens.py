import textwrap

from qsync.extractors.rust.tokens import tokenize


def kinds_values(src: str):
    return [(t.kind, t.value) for t in tokenize(src)]


def test_paths_and_generics():
    assert kinds_values("type T = web::Json<Vec<Todo>>;") == [
        ("ident", "type"),
        ("ident", "T"),
        ("punct", "="),
        ("ident", "web"),
        ("punct", "::"),
        ("ident", "Json"),
        ("punct", "<"),
        ("ident", "Vec"),
        ("punct", "<"),
        ("ident", "Todo"),
        ("punct", ">"),
        ("punct", ">"),
        ("punct", ";"),
    ]


def test_comments_dropped_but_doc_comments_kept():
    src = textwrap.dedent(
        """
        // plain
        /* block /* nested */ still comment */
        /// A todo item
        /** Block doc */
        struct Todo;
        """
    )
    toks = tokenize(src)
    docs = [t.value for t in toks if t.kind == "doc"]
    assert docs == ["A todo item", "Block doc"]
    assert [t.value for t in toks if t.kind == "ident"] == ["struct", "Todo"]


def test_strings_keep_their_start_line():
    src = 'fn f() {\n    let s = "multi\nline";\n    g();\n}\n'
    toks = tokenize(src)
    (string,) = [t for t in toks if t.kind == "string"]
    assert string.value == "multi\nline"
    assert string.line == 2
    assert next(t for t in toks if t.is_ident("g")).line == 4


def test_escapes_are_decoded():
    (string,) = [t for t in tokenize(r'const S: &str = "a\"b\n\u{41}";') if t.kind == "string"]
    assert string.value == 'a"b\nA'


def test_raw_strings_and_raw_identifiers():
    toks = tokenize('fn f() { let s = r#"a "quoted" b"#; let r#type = 1; }')
    strings = [t.value for t in toks if t.kind == "string"]
    assert strings == ['a "quoted" b']
    assert "type" in [t.value for t in toks if t.kind == "ident"]


def test_char_literals_and_lifetimes():
    toks = tokenize("fn f<'a>(x: &'static str) { let c = '\\''; let d = 'a'; }")
    assert [t.value for t in toks if t.kind == "char"] == ["\\'", "a"]
    assert [t.value for t in toks if t.kind == "lifetime"] == ["a", "static"]


def test_broken_input_still_yields_tokens():
    toks = tokenize('#[get("/oops')
    assert toks[0].is_punct("#")
    assert any(t.is_ident("get") for t in toks)


def test_arrow_and_fat_arrow():
    toks = tokenize("fn f() -> i32 { match x { _ => 1 } }")
    values = [t.value for t in toks if t.kind == "punct"]
    assert "->" in values
    assert "=>" in values
    assert [t.value for t in toks if t.kind == "number"] == ["1"]
