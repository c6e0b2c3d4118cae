"""Tests for clause tokenizing and keyword abbreviations."""

from acctmgr.commands.conditions import ASSOCIATION_KEYWORDS, USER_KEYWORDS
from acctmgr.commands.tokenizer import add_names, keyword_matches, split_names, tokenize


class TestTokenize:
    """Test cases for splitting of directives."""

    def test_keyword_with_value(self):
        """Test that quotes are stripped from the value."""
        clause = tokenize("Names='bob'")
        assert clause.keyword == "Names"
        assert clause.value == "bob"
        assert not clause.bare
        assert clause.option is None

    def test_option_character(self):
        """Test that a trailing +/- of the keyword becomes the option."""
        clause = tokenize("QosLevel+=normal")
        assert clause.keyword == "QosLevel"
        assert clause.option == "+"
        assert clause.value == "normal"

    def test_bare_word(self):
        """Test that a word without '=' is a bare value."""
        clause = tokenize("alice")
        assert clause.bare
        assert clause.value == "alice"

    def test_empty_value(self):
        """Test that '=' without a value gives an empty value."""
        clause = tokenize("DefaultAccount=")
        assert not clause.bare
        assert clause.value == ""


class TestKeywordMatching:
    """Test cases for keyword abbreviations."""

    def test_minimum_length(self):
        """Test that abbreviations respect the minimum length."""
        assert keyword_matches("Ad", "AdminLevel", 2)
        assert keyword_matches("adminlev", "AdminLevel", 2)
        assert not keyword_matches("A", "AdminLevel", 2)
        assert not keyword_matches("AdminLevels", "AdminLevel", 2)

    def test_user_table(self):
        """Test abbreviations of user condition keywords."""
        assert USER_KEYWORDS.match("U") == "users"
        assert USER_KEYWORDS.match("N") == "users"
        assert USER_KEYWORDS.match("Ad") == "adminlevel"
        assert USER_KEYWORDS.match("DefaultA") == "defaultaccount"
        assert USER_KEYWORDS.match("Default") is None

    def test_association_table(self):
        """Test abbreviations of association condition keywords."""
        assert ASSOCIATION_KEYWORDS.match("Ac") == "accounts"
        assert ASSOCIATION_KEYWORDS.match("Acct") == "accounts"
        assert ASSOCIATION_KEYWORDS.match("C") == "clusters"
        assert ASSOCIATION_KEYWORDS.match("Par") == "partitions"
        assert ASSOCIATION_KEYWORDS.match("A") is None
        assert "qos" in ASSOCIATION_KEYWORDS


class TestNames:
    """Test cases for comma-separated name lists."""

    def test_split_drops_blanks_and_duplicates(self):
        """Test that blanks and case-insensitive duplicates are dropped."""
        assert split_names("a, b,,A") == ["a", "b"]

    def test_add_counts_new_names(self):
        """Test that only new names are appended and counted."""
        names = ["a"]
        assert add_names(names, "A,b") == 1
        assert names == ["a", "b"]
        assert add_names(names, "") == 0
