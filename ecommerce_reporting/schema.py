import graphene
from shop.schema import ShopQuery, ShopMutation

# The Query class combines all report and lookup fields from the shop app (ShopQuery)
# and the base Graphene types (graphene.ObjectType).
class Query(ShopQuery, graphene.ObjectType):
    pass

# The Mutation class combines all write operations from the shop app (ShopMutation)
class Mutation(ShopMutation, graphene.ObjectType):
    pass

# Define the final schema used by the GraphQLView in urls.py
schema = graphene.Schema(query=Query, mutation=Mutation)
