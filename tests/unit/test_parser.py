"""Tests for query method name parsing."""

import dataclasses
import threading

import pytest
from pydantic import BaseModel

from vaultrepo.core.metadata import build_metadata
from vaultrepo.core.types import Direction, Order, Sort
from vaultrepo.exceptions import UnsupportedKeywordError, UnsupportedPredicateError
from vaultrepo.query.parser import (
    Combinator,
    DescriptorCache,
    Operator,
    PredicateClause,
    PredicateParser,
    QueryAction,
    split_words,
)


class Credential(BaseModel):
    id: str
    social_security_number: int = 0
    created: str = ""
    created_by: str = ""


@pytest.fixture
def metadata():
    return build_metadata(Credential, keyspace="credentials")


@pytest.fixture
def parse(metadata):
    parser = PredicateParser()
    return lambda name: parser.parse(name, metadata)


class TestSplitWords:
    """Tests for method name tokenization."""

    def test_camel_and_snake_agree(self):
        expected = ["find", "top", "10", "by", "id", "starts", "with"]
        assert split_words("findTop10ByIdStartsWith") == expected
        assert split_words("find_top10_by_id_starts_with") == expected

    def test_acronyms(self):
        assert split_words("findByURLIn") == ["find", "by", "url", "in"]


class TestPrefixes:
    """Tests for the query action prefix."""

    @pytest.mark.parametrize(
        ("name", "action"),
        [
            ("find_by_id", QueryAction.FIND),
            ("getById", QueryAction.FIND),
            ("read_by_id", QueryAction.FIND),
            ("query_by_id", QueryAction.FIND),
            ("search_by_id", QueryAction.FIND),
            ("stream_by_id", QueryAction.FIND),
            ("count_by_id", QueryAction.COUNT),
            ("exists_by_id", QueryAction.EXISTS),
            ("delete_by_id", QueryAction.DELETE),
            ("removeById", QueryAction.DELETE),
        ],
    )
    def test_actions(self, parse, name, action):
        assert parse(name).action == action

    def test_unknown_prefix(self, parse):
        with pytest.raises(UnsupportedKeywordError) as exc_info:
            parse("fetchById")
        assert exc_info.value.fragment == "fetch"

    def test_find_all_has_no_predicates(self, parse):
        descriptor = parse("find_all")
        assert descriptor.has_predicates is False
        assert descriptor.parameter_count == 0


class TestSubject:
    """Tests for Top/First/Distinct in the subject."""

    def test_top_n(self, parse):
        assert parse("findTop10ByIdStartsWith").limit == 10

    def test_first_without_number(self, parse):
        assert parse("find_first_by_id_starts_with").limit == 1
        assert parse("findTopByIdIn").limit == 1

    def test_no_limit(self, parse):
        assert parse("find_by_id_starts_with").limit is None

    def test_distinct(self, parse):
        assert parse("findDistinctByIdIn").distinct is True
        assert parse("findByIdIn").distinct is False


class TestKeywords:
    """Tests for predicate keywords."""

    @pytest.mark.parametrize(
        ("name", "operator"),
        [
            ("findById", Operator.EQUALS),
            ("findByIdIs", Operator.EQUALS),
            ("findByIdEquals", Operator.EQUALS),
            ("findByIdIsEqualTo", Operator.EQUALS),
            ("findByIdNot", Operator.NOT_EQUALS),
            ("findByIdIsNot", Operator.NOT_EQUALS),
            ("findByIdGreaterThan", Operator.GREATER_THAN),
            ("findByIdAfter", Operator.GREATER_THAN),
            ("findByIdGreaterThanEqual", Operator.GREATER_THAN_EQUAL),
            ("findByIdIsLessThan", Operator.LESS_THAN),
            ("findByIdBefore", Operator.LESS_THAN),
            ("findByIdLessThanEqual", Operator.LESS_THAN_EQUAL),
            ("findByIdBetween", Operator.BETWEEN),
            ("findByIdIn", Operator.IN),
            ("findByIdNotIn", Operator.NOT_IN),
            ("findByIdIsNotIn", Operator.NOT_IN),
            ("findByIdLike", Operator.STARTING_WITH),
            ("findByIdStartsWith", Operator.STARTING_WITH),
            ("findByIdStartingWith", Operator.STARTING_WITH),
            ("findByIdEndsWith", Operator.ENDING_WITH),
            ("findByIdNotLike", Operator.NOT_LIKE),
            ("findByIdContains", Operator.CONTAINING),
            ("findByIdNotContaining", Operator.NOT_CONTAINING),
            ("findByIdMatchesRegex", Operator.REGEX),
            ("findByIdRegex", Operator.REGEX),
        ],
    )
    def test_operator(self, parse, name, operator):
        descriptor = parse(name)
        assert descriptor.clauses == (PredicateClause(property_name="id", operator=operator),)

    def test_between_takes_two_arguments(self, parse):
        assert parse("count_by_id_between").parameter_count == 2

    def test_snake_case_equivalent(self, parse):
        camel = parse("findByIdStartsWithOrIdIn")
        snake = parse("find_by_id_starts_with_or_id_in")
        assert camel.clauses == snake.clauses
        assert camel.combinators == snake.combinators


class TestCombinators:
    """Tests for And/Or chains."""

    def test_chain_keeps_written_order(self, parse):
        descriptor = parse("find_by_id_starts_with_or_id_ends_with_and_id_not_in")
        assert [c.operator for c in descriptor.clauses] == [
            Operator.STARTING_WITH,
            Operator.ENDING_WITH,
            Operator.NOT_IN,
        ]
        assert descriptor.combinators == (Combinator.OR, Combinator.AND)
        assert descriptor.parameter_count == 3

    def test_dangling_and(self, parse):
        with pytest.raises(UnsupportedKeywordError):
            parse("findByIdAnd")

    def test_leading_or(self, parse):
        with pytest.raises(UnsupportedKeywordError):
            parse("findByOrId")


class TestOrderBy:
    """Tests for OrderBy clauses."""

    def test_order_after_predicate(self, parse):
        descriptor = parse("findTop10ByIdStartsWithOrderBySocialSecurityNumberDesc")
        assert descriptor.limit == 10
        assert descriptor.clauses == (
            PredicateClause(property_name="id", operator=Operator.STARTING_WITH),
        )
        assert descriptor.sort == Sort(
            orders=(Order(name="social_security_number", direction=Direction.DESC),)
        )

    def test_order_without_predicate(self, parse):
        descriptor = parse("find_all_order_by_id_desc")
        assert descriptor.clauses == ()
        assert descriptor.sort == Sort.by("id", direction="desc")

    def test_several_orders(self, parse):
        descriptor = parse("find_by_id_in_order_by_created_asc_id_desc")
        assert descriptor.sort.orders == (
            Order(name="created", direction=Direction.ASC),
            Order(name="id", direction=Direction.DESC),
        )

    def test_default_direction_is_ascending(self, parse):
        assert parse("find_by_id_in_order_by_created").sort == Sort.by("created")

    def test_sort_property_ending_in_by(self, parse):
        descriptor = parse("find_all_order_by_created_by_desc")
        assert descriptor.clauses == ()
        assert descriptor.sort == Sort.by("created_by", direction="desc")

    def test_sort_property_ending_in_by_after_predicate(self, parse):
        descriptor = parse("findByIdStartsWithOrderByCreatedByAscIdDesc")
        assert descriptor.clauses == (
            PredicateClause(property_name="id", operator=Operator.STARTING_WITH),
        )
        assert descriptor.sort.orders == (
            Order(name="created_by", direction=Direction.ASC),
            Order(name="id", direction=Direction.DESC),
        )

    def test_unknown_sort_property(self, parse):
        with pytest.raises(UnsupportedPredicateError) as exc_info:
            parse("findByIdInOrderByNickname")
        assert exc_info.value.property_name == "Nickname"

    def test_direction_without_property(self, parse):
        with pytest.raises(UnsupportedKeywordError):
            parse("find_all_order_by_desc")


class TestUnsupported:
    """Tests for names the store cannot answer."""

    def test_nested_property(self, parse):
        with pytest.raises(UnsupportedPredicateError) as exc_info:
            parse("findByAddressCity")
        assert exc_info.value.property_name == "AddressCity"
        assert exc_info.value.supported == ["id"]

    def test_non_identifier_property(self, parse):
        """Only identifiers can be filtered; other properties need a fetch."""
        with pytest.raises(UnsupportedPredicateError):
            parse("findBySocialSecurityNumber")

    def test_unknown_keyword_after_identifier(self, parse):
        with pytest.raises(UnsupportedKeywordError) as exc_info:
            parse("findByIdSoundsLike")
        assert exc_info.value.fragment == "SoundsLike"


class TestDescriptorCache:
    """Tests for DescriptorCache."""

    def test_parses_once(self, metadata):
        cache = DescriptorCache()
        first = cache.get_or_parse(metadata, "find_by_id_in")
        assert cache.get_or_parse(metadata, "find_by_id_in") is first
        assert cache.get(metadata, "find_by_id_in") is first
        assert len(cache) == 1

    def test_clear(self, metadata):
        cache = DescriptorCache()
        cache.get_or_parse(metadata, "find_by_id_in")
        cache.clear()
        assert len(cache) == 0
        assert cache.get(metadata, "find_by_id_in") is None

    def test_failed_parse_not_cached(self, metadata):
        cache = DescriptorCache()
        with pytest.raises(UnsupportedPredicateError):
            cache.get_or_parse(metadata, "findByCreated")
        assert len(cache) == 0

    def test_concurrent_population_publishes_one_descriptor(self, metadata):
        cache = DescriptorCache()
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(cache.get_or_parse(metadata, "findTop3ByIdStartsWithOrderByIdDesc"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert len({id(descriptor) for descriptor in results}) == 1

    def test_keyed_by_identifier_property(self, metadata):
        cache = DescriptorCache()
        cache.get_or_parse(metadata, "find_by_id_starts_with")

        by_code = build_metadata(Credential, id_field="created")
        assert cache.get(by_code, "find_by_id_starts_with") is None
        with pytest.raises(UnsupportedPredicateError):
            cache.get_or_parse(by_code, "find_by_id_starts_with")

    def test_keyed_by_declared_fields(self, metadata):
        cache = DescriptorCache()
        first = cache.get_or_parse(metadata, "find_all_order_by_id")
        narrowed = dataclasses.replace(metadata, fields=("id",))
        assert cache.get_or_parse(narrowed, "find_all_order_by_id") is not first
        assert len(cache) == 2
