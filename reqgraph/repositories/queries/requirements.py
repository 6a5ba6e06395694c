"""Cypher for requirements, reference allocation and duplicate repair."""

from reqgraph.repositories.queries.hierarchy import PROJECT_MATCH, UPSERT_SCOPE

# Reference allocation

# Increments the scoped counter first: the write lock it takes on the
# document/project node serializes concurrent allocations in that scope.
CLAIM_ALLOCATION_COUNTER = UPSERT_SCOPE + """
WITH tenant, project
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(sectionDocument:Document)-[:HAS_SECTION]->(:DocumentSection {id: $sectionId})
WITH tenant, project, coalesce($documentSlug, sectionDocument.slug) AS documentSlug
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: documentSlug})
OPTIONAL MATCH (document)-[:HAS_SECTION]->(section:DocumentSection {id: $sectionId})
FOREACH (doc IN CASE WHEN document IS NOT NULL THEN [document] ELSE [] END |
  SET doc.requirementCounter = coalesce(doc.requirementCounter, 0) + 1
)
FOREACH (proj IN CASE WHEN document IS NULL AND documentSlug IS NULL THEN [project] ELSE [] END |
  SET proj.requirementCounter = coalesce(proj.requirementCounter, 0) + 1
)
RETURN documentSlug AS requestedDocument,
       document.slug AS documentSlug,
       document.shortCode AS documentShortCode,
       document.deletedAt AS documentDeletedAt,
       section.id AS sectionId,
       section.shortCode AS sectionShortCode,
       section.name AS sectionName,
       CASE WHEN document IS NOT NULL
         THEN document.requirementCounter
         ELSE project.requirementCounter
       END AS counter
"""

# Deleted requirements count too: their refs and ids are never handed out again.
REFS_WITH_PREFIX = """
MATCH (requirement:Requirement {tenant: $tenantSlug, projectKey: $projectSlug})
WHERE requirement.ref STARTS WITH $prefix + '-' OR requirement.id STARTS WITH $idPrefix + '-'
RETURN requirement.id AS id, requirement.ref AS ref
"""

SYNC_DOCUMENT_COUNTER = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
SET document.requirementCounter = CASE
  WHEN coalesce(document.requirementCounter, 0) < $number THEN $number
  ELSE document.requirementCounter
END
"""

SYNC_PROJECT_COUNTER = PROJECT_MATCH + """
SET project.requirementCounter = CASE
  WHEN coalesce(project.requirementCounter, 0) < $number THEN $number
  ELSE project.requirementCounter
END
"""

CREATE_REQUIREMENT = PROJECT_MATCH + """
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
OPTIONAL MATCH (document)-[:HAS_SECTION]->(section:DocumentSection {id: $sectionId})
CREATE (requirement:Requirement)
SET requirement = $properties
FOREACH (doc IN CASE WHEN document IS NOT NULL THEN [document] ELSE [] END |
  MERGE (doc)-[:CONTAINS]->(requirement)
)
FOREACH (proj IN CASE WHEN document IS NULL THEN [project] ELSE [] END |
  MERGE (proj)-[:CONTAINS]->(requirement)
)
FOREACH (sec IN CASE WHEN section IS NOT NULL THEN [section] ELSE [] END |
  MERGE (sec)-[:HAS_REQUIREMENT]->(requirement)
)
RETURN requirement
"""

# Renumbering in place

DOCUMENT_REQUIREMENT_PREFIXES = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})-[:CONTAINS]->(requirement:Requirement)
OPTIONAL MATCH (section:DocumentSection)-[:HAS_REQUIREMENT]->(requirement)
RETURN requirement.id AS id,
       requirement.ref AS ref,
       document.slug AS documentSlug,
       document.shortCode AS documentShortCode,
       section.shortCode AS sectionShortCode,
       section.name AS sectionName
ORDER BY requirement.ref
"""

SECTION_REQUIREMENT_PREFIXES = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document)-[:HAS_SECTION]->(section:DocumentSection {id: $sectionId})-[:HAS_REQUIREMENT]->(requirement:Requirement)
RETURN requirement.id AS id,
       requirement.ref AS ref,
       document.slug AS documentSlug,
       document.shortCode AS documentShortCode,
       section.shortCode AS sectionShortCode,
       section.name AS sectionName
ORDER BY requirement.ref
"""

PROJECT_REFS = """
MATCH (requirement:Requirement {tenant: $tenantSlug, projectKey: $projectSlug})
RETURN requirement.id AS id, requirement.ref AS ref
"""

APPLY_REF_CHANGES = """
UNWIND $changes AS change
MATCH (requirement:Requirement {id: change.id, tenant: $tenantSlug, projectKey: $projectSlug})
SET requirement.ref = change.ref, requirement.path = change.path, requirement.updatedAt = $now
RETURN requirement
"""

# Reads

_PROJECT_REQUIREMENTS = """
MATCH (requirement:Requirement {tenant: $tenantSlug, projectKey: $projectSlug})
WHERE coalesce(requirement.deleted, false) = false
"""

GET_REQUIREMENT = PROJECT_MATCH + """
OPTIONAL MATCH (project)-[:CONTAINS]->(direct:Requirement {ref: $ref})
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(:Document)-[:CONTAINS]->(docReq:Requirement {ref: $ref})
WITH coalesce(direct, docReq) AS requirement
WHERE requirement IS NOT NULL
RETURN requirement
ORDER BY coalesce(requirement.deleted, false), requirement.createdAt
LIMIT 1
"""

GET_REQUIREMENT_BY_ID = """
MATCH (requirement:Requirement {id: $requirementId, tenant: $tenantSlug, projectKey: $projectSlug})
RETURN requirement
"""

LIST_REQUIREMENTS = _PROJECT_REQUIREMENTS + """
RETURN requirement
ORDER BY requirement.ref
SKIP $offset
LIMIT $limit
"""

COUNT_REQUIREMENTS = _PROJECT_REQUIREMENTS + """
RETURN count(requirement) AS total
"""

LIST_DOCUMENT_REQUIREMENTS = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})-[:CONTAINS]->(requirement:Requirement)
WHERE coalesce(requirement.deleted, false) = false
RETURN requirement
ORDER BY requirement.ref
SKIP $offset
LIMIT $limit
"""

LIST_SECTION_REQUIREMENTS = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(:Document)-[:HAS_SECTION]->(section:DocumentSection {id: $sectionId})-[:HAS_REQUIREMENT]->(requirement:Requirement)
WHERE coalesce(requirement.deleted, false) = false
RETURN requirement
ORDER BY requirement.ref
"""

SUGGEST_LINKS = _PROJECT_REQUIREMENTS + """
AND toLower(requirement.text) CONTAINS $needle
RETURN requirement.ref AS ref, requirement.title AS title, requirement.text AS text, requirement.path AS path
ORDER BY requirement.ref
LIMIT $limit
"""

# Writes

TOUCH_REQUIREMENT = PROJECT_MATCH + """
OPTIONAL MATCH (project)-[:CONTAINS]->(direct:Requirement {ref: $ref})
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(:Document)-[:CONTAINS]->(docReq:Requirement {ref: $ref})
WITH coalesce(direct, docReq) AS requirement
WHERE requirement IS NOT NULL
SET requirement.updatedAt = $now
RETURN requirement
"""

UPDATE_REQUIREMENT = """
MATCH (requirement:Requirement {id: $requirementId, tenant: $tenantSlug, projectKey: $projectSlug})
WHERE coalesce(requirement.deleted, false) = false
SET {assignments}, requirement.updatedAt = $now
RETURN requirement
"""

SOFT_DELETE_REQUIREMENT = """
MATCH (requirement:Requirement {id: $requirementId, tenant: $tenantSlug, projectKey: $projectSlug})
WHERE coalesce(requirement.deleted, false) = false
SET requirement.deleted = true, requirement.deletedAt = $now, requirement.updatedAt = $now
RETURN requirement
"""

RESTORE_REQUIREMENT = """
MATCH (requirement:Requirement {id: $requirementId, tenant: $tenantSlug, projectKey: $projectSlug})
WHERE requirement.deleted = true
SET requirement.deleted = false, requirement.deletedAt = null, requirement.updatedAt = $now
RETURN requirement
"""

# Duplicate detection

FIND_DUPLICATE_REFS = _PROJECT_REQUIREMENTS + """
WITH requirement
ORDER BY requirement.createdAt, requirement.id
WITH requirement.ref AS ref, collect(requirement) AS requirements
WHERE size(requirements) > 1
RETURN ref, requirements
ORDER BY ref
"""

# Candidates

CREATE_CANDIDATES = """
UNWIND $rows AS row
MERGE (tenant:Tenant {slug: row.tenant})
  ON CREATE SET tenant.name = row.tenantName, tenant.createdAt = row.createdAt
MERGE (project:Project {slug: row.projectKey, tenantSlug: row.tenant})
  ON CREATE SET project.key = row.projectName, project.createdAt = row.createdAt,
                project.requirementCounter = 0, project.baselineCounter = 0
MERGE (tenant)-[:OWNS]->(project)
CREATE (candidate:RequirementCandidate)
SET candidate = row.properties
MERGE (project)-[:HAS_CANDIDATE]->(candidate)
RETURN candidate
"""

LIST_CANDIDATES = PROJECT_MATCH + """
MATCH (project)-[:HAS_CANDIDATE]->(candidate:RequirementCandidate)
RETURN candidate
ORDER BY candidate.createdAt DESC
SKIP $offset
LIMIT $limit
"""

GET_CANDIDATE = PROJECT_MATCH + """
MATCH (project)-[:HAS_CANDIDATE]->(candidate:RequirementCandidate {id: $candidateId})
RETURN candidate
"""

UPDATE_CANDIDATE = PROJECT_MATCH + """
MATCH (project)-[:HAS_CANDIDATE]->(candidate:RequirementCandidate {id: $candidateId})
SET {assignments}, candidate.updatedAt = $now
RETURN candidate
"""
