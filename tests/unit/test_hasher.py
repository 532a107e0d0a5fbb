from specgraph.core.hasher import canonical_json, hash_content, hash_spec, normalize_spec_text


def test_normalize_collapses_whitespace():
    assert normalize_spec_text("  Given I am\n\ton   the login page \n") == "Given I am on the login page"


def test_hash_spec_is_stable_across_calls():
    text = "Given I am on the login page\nWhen I click the submit button"
    assert hash_spec(text) == hash_spec(text)
    assert len(hash_spec(text)) == 64


def test_hash_spec_ignores_whitespace_only_changes():
    assert hash_spec("Given  I am on the login page") == hash_spec("Given I am on the login page\n")


def test_hash_spec_keeps_case_and_punctuation():
    assert hash_spec("Then I should see Welcome") != hash_spec("Then I should see welcome")
    assert hash_spec("Then I should see Welcome") != hash_spec("Then I should see Welcome!")


def test_canonical_json_ignores_key_order():
    assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
    assert hash_content({"b": 1, "a": 2}) == hash_content({"a": 2, "b": 1})


def test_hash_content_distinguishes_list_order():
    assert hash_content({"nodes": [1, 2]}) != hash_content({"nodes": [2, 1]})
