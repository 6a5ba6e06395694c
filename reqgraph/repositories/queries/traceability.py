"""Cypher for baselines and trace links."""

from reqgraph.repositories.queries.hierarchy import PROJECT_MATCH, UPSERT_SCOPE

# Baselines

CREATE_BASELINE = UPSERT_SCOPE + """
SET project.baselineCounter = coalesce(project.baselineCounter, 0) + 1
WITH project, project.baselineCounter AS counter
OPTIONAL MATCH (project)-[:CONTAINS]->(direct:Requirement)
WHERE coalesce(direct.deleted, false) = false
WITH project, counter, collect(DISTINCT direct) AS directReqs
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(:Document)-[:CONTAINS]->(docReq:Requirement)
WHERE coalesce(docReq.deleted, false) = false
WITH project, counter, directReqs + collect(DISTINCT docReq) AS requirements
RETURN counter, [req IN requirements | {id: req.id, ref: req.ref}] AS requirements
"""

PERSIST_BASELINE = PROJECT_MATCH + """
CREATE (baseline:Baseline)
SET baseline = $properties
MERGE (project)-[:HAS_BASELINE]->(baseline)
WITH baseline
CALL {
  WITH baseline
  UNWIND $requirementIds AS requirementId
  MATCH (requirement:Requirement {id: requirementId})
  MERGE (baseline)-[:SNAPSHOT_OF]->(requirement)
  RETURN count(requirement) AS snapshotted
}
RETURN baseline, snapshotted
"""

LIST_BASELINES = PROJECT_MATCH + """
MATCH (project)-[:HAS_BASELINE]->(baseline:Baseline)
RETURN baseline
ORDER BY baseline.createdAt DESC
"""

GET_BASELINE = PROJECT_MATCH + """
MATCH (project)-[:HAS_BASELINE]->(baseline:Baseline {ref: $ref})
RETURN baseline
"""

# Trace links

_LINK_ENDPOINTS = """
MATCH (link)-[:FROM_REQUIREMENT]->(sourceReq:Requirement)
MATCH (link)-[:TO_REQUIREMENT]->(targetReq:Requirement)
OPTIONAL MATCH (sourceDoc:Document)-[:CONTAINS]->(sourceReq)
OPTIONAL MATCH (targetDoc:Document)-[:CONTAINS]->(targetReq)
"""

_LINK_RETURN = """
RETURN link, sourceReq, targetReq, sourceDoc.slug AS sourceDocumentSlug, targetDoc.slug AS targetDocumentSlug
"""

CREATE_TRACE_LINK = PROJECT_MATCH + """
MATCH (source:Requirement {id: $sourceRequirementId, tenant: $tenantSlug, projectKey: $projectSlug})
MATCH (target:Requirement {id: $targetRequirementId, tenant: $tenantSlug, projectKey: $projectSlug})
CREATE (link:TraceLink)
SET link = $properties
MERGE (project)-[:HAS_TRACE_LINK]->(link)
MERGE (link)-[:FROM_REQUIREMENT]->(source)
MERGE (link)-[:TO_REQUIREMENT]->(target)
CREATE (source)-[:LINKS_TO {type: $linkType, linkId: $linkId}]->(target)
WITH link
""" + _LINK_ENDPOINTS + _LINK_RETURN

LIST_TRACE_LINKS = PROJECT_MATCH + """
MATCH (project)-[:HAS_TRACE_LINK]->(link:TraceLink)
""" + _LINK_ENDPOINTS + _LINK_RETURN + """
ORDER BY link.createdAt DESC
"""

LIST_REQUIREMENT_TRACE_LINKS = PROJECT_MATCH + """
MATCH (project)-[:HAS_TRACE_LINK]->(link:TraceLink)
WHERE link.sourceRequirementId = $requirementId OR link.targetRequirementId = $requirementId
""" + _LINK_ENDPOINTS + _LINK_RETURN + """
ORDER BY link.createdAt DESC
"""

# Edges created before links carried a linkId are matched by type instead.
DELETE_TRACE_LINK = PROJECT_MATCH + """
MATCH (project)-[:HAS_TRACE_LINK]->(link:TraceLink {id: $linkId})
OPTIONAL MATCH (link)-[:FROM_REQUIREMENT]->(sourceReq:Requirement)
OPTIONAL MATCH (link)-[:TO_REQUIREMENT]->(targetReq:Requirement)
OPTIONAL MATCH (sourceReq)-[edge:LINKS_TO]->(targetReq)
WHERE edge.linkId = link.id OR (edge.linkId IS NULL AND edge.type = link.linkType)
DELETE edge
WITH DISTINCT link
DETACH DELETE link
"""

# Document linksets

_LINKSET_DOCUMENTS = """
MATCH (linkset)-[:FROM_DOCUMENT]->(sourceDoc:Document)
MATCH (linkset)-[:TO_DOCUMENT]->(targetDoc:Document)
RETURN linkset, sourceDoc, targetDoc
"""

LINKSET_CONTEXT = PROJECT_MATCH + """
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(document:Document)
WHERE document.slug IN [$sourceDocumentSlug, $targetDocumentSlug] AND document.deletedAt IS NULL
WITH project, collect(DISTINCT document.slug) AS documentSlugs
OPTIONAL MATCH (project)-[:HAS_LINKSET]->(existing:DocumentLinkset {
  sourceDocumentSlug: $sourceDocumentSlug, targetDocumentSlug: $targetDocumentSlug
})
RETURN documentSlugs, existing.id AS existingId
"""

CREATE_LINKSET = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(sourceDoc:Document {slug: $sourceDocumentSlug})
MATCH (project)-[:HAS_DOCUMENT]->(targetDoc:Document {slug: $targetDocumentSlug})
CREATE (linkset:DocumentLinkset)
SET linkset = $properties
MERGE (project)-[:HAS_LINKSET]->(linkset)
MERGE (linkset)-[:FROM_DOCUMENT]->(sourceDoc)
MERGE (linkset)-[:TO_DOCUMENT]->(targetDoc)
MERGE (sourceDoc)-[:LINKED_TO {linksetId: linkset.id}]->(targetDoc)
RETURN linkset, sourceDoc, targetDoc
"""

LIST_LINKSETS = PROJECT_MATCH + """
MATCH (project)-[:HAS_LINKSET]->(linkset:DocumentLinkset)
""" + _LINKSET_DOCUMENTS + """
ORDER BY linkset.createdAt DESC
"""

GET_LINKSET = PROJECT_MATCH + """
MATCH (project)-[:HAS_LINKSET]->(linkset:DocumentLinkset {
  sourceDocumentSlug: $sourceDocumentSlug, targetDocumentSlug: $targetDocumentSlug
})
""" + _LINKSET_DOCUMENTS

GET_LINKSET_BY_ID = PROJECT_MATCH + """
MATCH (project)-[:HAS_LINKSET]->(linkset:DocumentLinkset {id: $linksetId})
""" + _LINKSET_DOCUMENTS

UPDATE_LINKSET_LINKS = PROJECT_MATCH + """
MATCH (project)-[:HAS_LINKSET]->(linkset:DocumentLinkset {id: $linksetId})
SET linkset.links = $links, linkset.linkCount = $linkCount, linkset.updatedAt = $now
WITH linkset
""" + _LINKSET_DOCUMENTS

DELETE_LINKSET = PROJECT_MATCH + """
MATCH (project)-[:HAS_LINKSET]->(linkset:DocumentLinkset {id: $linksetId})
OPTIONAL MATCH (:Document)-[edge:LINKED_TO {linksetId: linkset.id}]->(:Document)
DELETE edge
WITH DISTINCT linkset
DETACH DELETE linkset
"""

LIVE_REQUIREMENT_IDS = """
MATCH (requirement:Requirement {tenant: $tenantSlug, projectKey: $projectSlug})
WHERE requirement.id IN $requirementIds AND coalesce(requirement.deleted, false) = false
RETURN collect(requirement.id) AS ids
"""
