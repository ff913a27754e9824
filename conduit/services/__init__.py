# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access:
#
#   predicates      : listing filters -> SQL conditions (name lookups included)
#   projection      : favoritesCount / favorited / following per article
#   pagination      : concurrent count + data queries from one predicate set
#   listing_service : global article list and the follow feed
#   article_service : create / read / update / delete for Article
#   favorite_service: favorite / unfavorite toggle
#   comment_service : append-only comments on an article
#   profile_service : profiles and the follow relation
#   user_service    : registration, login, current user
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.
