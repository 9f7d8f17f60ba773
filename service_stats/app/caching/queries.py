"""
SQL for every dataset the statistics cache preloads.

Route handlers run the same statements on a cache miss, so a preloaded entry
and a backfilled one are always shaped identically.
"""

DEPARTMENT_LIST = "SELECT DISTINCT departement FROM departements ORDER BY departement"

DEPARTMENT_DETAILS = """
    SELECT
      d.departement,
      d.population,
      d.logements_sociaux_pct,
      d.insecurite_score,
      d.immigration_score,
      d.islamisation_score,
      d.defrancisation_score,
      d.wokisme_score,
      d.number_of_mosques,
      d.mosque_p100k,
      COALESCE(qpv_stats.total_qpv, 0) AS total_qpv,
      COALESCE(qpv_stats.total_population_qpv, 0) AS total_population_qpv,
      CASE
        WHEN d.population > 0 THEN (COALESCE(qpv_stats.total_population_qpv, 0) * 100.0 / d.population)
        ELSE 0
      END AS pop_in_qpv_pct,
      d.total_places_migrants,
      d.places_migrants_p1k
    FROM departements d
    LEFT JOIN (
      SELECT insee_dep, COUNT(*) AS total_qpv, SUM(pop_muni_qpv) AS total_population_qpv
      FROM qpv_data
      GROUP BY insee_dep
    ) qpv_stats ON qpv_stats.insee_dep = $1
    WHERE d.departement = $2
"""

DEPARTMENT_CRIME_HISTORY = "SELECT * FROM department_crime WHERE dep = $1 ORDER BY annee ASC"

DEPARTMENT_CRIME_LATEST = """
    SELECT * FROM department_crime
    WHERE dep = $1 AND annee = (SELECT MAX(annee) FROM department_crime WHERE dep = $1)
"""

DEPARTMENT_NAMES_HISTORY = """
    SELECT musulman_pct, africain_pct, asiatique_pct, traditionnel_pct, moderne_pct,
           invente_pct, europeen_pct, annais
    FROM department_names WHERE dpt = $1 ORDER BY annais ASC
"""

DEPARTMENT_NAMES_LATEST = """
    SELECT musulman_pct, africain_pct, asiatique_pct, traditionnel_pct, moderne_pct, annais
    FROM department_names
    WHERE dpt = $1 AND annais = (SELECT MAX(annais) FROM department_names WHERE dpt = $1)
"""

DEPARTMENT_PREFET = "SELECT code, prenom, nom, date_poste FROM prefets WHERE code = $1"

COUNTRY_DETAILS = """
    SELECT country, population, logements_sociaux_pct, insecurite_score, immigration_score,
           islamisation_score, defrancisation_score, wokisme_score, number_of_mosques,
           mosque_p100k, total_qpv, pop_in_qpv_pct, total_places_migrants, places_migrants_p1k
    FROM country WHERE UPPER(country) = $1
"""

COUNTRY_CRIME_HISTORY = "SELECT * FROM country_crime WHERE UPPER(country) = $1 ORDER BY annee ASC"

COUNTRY_CRIME_LATEST = """
    SELECT * FROM country_crime
    WHERE UPPER(country) = $1
      AND annee = (SELECT MAX(annee) FROM country_crime WHERE UPPER(country) = $1)
"""

COUNTRY_NAMES_HISTORY = """
    SELECT musulman_pct, africain_pct, asiatique_pct, traditionnel_pct, moderne_pct,
           invente_pct, europeen_pct, annais
    FROM country_names WHERE UPPER(country) = $1 ORDER BY annais ASC
"""

COUNTRY_NAMES_LATEST = """
    SELECT musulman_pct, africain_pct, asiatique_pct, traditionnel_pct, moderne_pct, annais
    FROM country_names
    WHERE UPPER(country) = $1
      AND annais = (SELECT MAX(annais) FROM country_names WHERE UPPER(country) = $1)
"""

COUNTRY_MINISTRE = """
    SELECT country, prenom, nom, sexe, date_nais, date_mandat, famille_nuance, nuance_politique
    FROM ministre_interieur
    WHERE UPPER(country) = $1
    ORDER BY date_mandat DESC
    LIMIT 1
"""

# Crime composites shared by both rankings; "{alias}" is the crime table alias.
_CRIME_COMPOSITES = """
      ROUND((COALESCE({alias}.coups_et_blessures_volontaires_p1k, 0) +
       COALESCE({alias}.coups_et_blessures_volontaires_intrafamiliaux_p1k, 0) +
       COALESCE({alias}.autres_coups_et_blessures_volontaires_p1k, 0) +
       COALESCE({alias}.vols_avec_armes_p1k, 0) +
       COALESCE({alias}.vols_violents_sans_arme_p1k, 0))::numeric, 2) AS violences_physiques_p1k,
      COALESCE({alias}.violences_sexuelles_p1k, 0) AS violences_sexuelles_p1k,
      (COALESCE({alias}.vols_avec_armes_p1k, 0) +
       COALESCE({alias}.vols_violents_sans_arme_p1k, 0) +
       COALESCE({alias}.vols_sans_violence_contre_des_personnes_p1k, 0) +
       COALESCE({alias}.cambriolages_de_logement_p1k, 0) +
       COALESCE({alias}.vols_de_vehicules_p1k, 0) +
       COALESCE({alias}.vols_dans_les_vehicules_p1k, 0) +
       COALESCE({alias}.vols_d_accessoires_sur_vehicules_p1k, 0)) AS vols_p1k,
      COALESCE({alias}.destructions_et_degradations_volontaires_p1k, 0) AS destructions_p1k,
      (COALESCE({alias}.usage_de_stupefiants_p1k, 0) +
       COALESCE({alias}.usage_de_stupefiants_afd_p1k, 0) +
       COALESCE({alias}.trafic_de_stupefiants_p1k, 0)) AS stupefiants_p1k,
      COALESCE({alias}.escroqueries_p1k, 0) AS escroqueries_p1k
"""

# Raw nationality counts; percentages are derived in rankings.nationality_shares.
_NAT1_COUNTS = """
      {alias}.ensemble AS nat1_ensemble,
      {alias}.etrangers AS nat1_etrangers,
      {alias}.francais_de_naissance AS nat1_francais_de_naissance,
      {alias}.francais_par_acquisition AS nat1_francais_par_acquisition,
      {alias}.portugais AS nat1_portugais,
      {alias}.italiens AS nat1_italiens,
      {alias}.espagnols AS nat1_espagnols,
      {alias}.autres_nationalites_de_l_ue AS nat1_autres_nationalites_de_l_ue,
      {alias}.autres_nationalites_d_europe AS nat1_autres_nationalites_d_europe,
      {alias}.algeriens AS nat1_algeriens,
      {alias}.marocains AS nat1_marocains,
      {alias}.tunisiens AS nat1_tunisiens,
      {alias}.turcs AS nat1_turcs,
      {alias}.autres_nationalites_d_afrique AS nat1_autres_nationalites_d_afrique,
      {alias}.autres_nationalites AS nat1_autres_nationalites
"""

_TOTAL_SCORE = """
      (COALESCE({alias}.insecurite_score, 0) + COALESCE({alias}.immigration_score, 0) +
       COALESCE({alias}.islamisation_score, 0) + COALESCE({alias}.defrancisation_score, 0) +
       COALESCE({alias}.wokisme_score, 0)) / 5 AS total_score
"""

DEPARTMENT_RANKINGS = f"""
    WITH latest_department_names AS (
      SELECT DISTINCT ON (dpt)
        dpt, musulman_pct, africain_pct, asiatique_pct, traditionnel_pct, moderne_pct, annais
      FROM department_names
      ORDER BY dpt, annais DESC
    )
    SELECT
      d.departement,
      d.population,
      d.logements_sociaux_pct,
      d.insecurite_score,
      d.immigration_score,
      d.islamisation_score,
      d.defrancisation_score,
      d.wokisme_score,
      d.number_of_mosques,
      d.mosque_p100k,
      d.total_qpv,
      d.pop_in_qpv_pct,
      d.total_places_migrants,
      d.places_migrants_p1k,
      {_TOTAL_SCORE.format(alias='d')},
      dn.musulman_pct,
      (COALESCE(dc.homicides_p100k, 0) + COALESCE(dc.tentatives_homicides_p100k, 0)) AS homicides_total_p100k,
      {_CRIME_COMPOSITES.format(alias='dc')},
      (COALESCE(dn.musulman_pct, 0) + COALESCE(dn.africain_pct, 0) + COALESCE(dn.asiatique_pct, 0)) AS extra_europeen_pct,
      (COALESCE(dn.traditionnel_pct, 0) + COALESCE(dn.moderne_pct, 0)) AS prenom_francais_pct,
      COALESCE(ds.total_subventions_par_hab, 0) AS total_subventions_par_hab,
      {_NAT1_COUNTS.format(alias='dnat1')}
    FROM departements d
    LEFT JOIN latest_department_names dn ON d.departement = dn.dpt
    LEFT JOIN department_crime dc ON d.departement = dc.dep
      AND dc.annee = (SELECT MAX(annee) FROM department_crime WHERE dep = d.departement)
    LEFT JOIN department_subventions ds ON d.departement = ds.dep
    LEFT JOIN department_nat1 dnat1 ON d.departement = dnat1.code
    ORDER BY d.departement
"""

POLITIQUE_COMMUNES = f"""
    SELECT
      l.cog,
      l.population,
      l.logements_sociaux_pct,
      l.insecurite_score,
      l.immigration_score,
      l.islamisation_score,
      l.defrancisation_score,
      l.wokisme_score,
      l.mosque_p100k,
      l.pop_in_qpv_pct,
      l.places_migrants_p1k,
      {_TOTAL_SCORE.format(alias='l')},
      {_CRIME_COMPOSITES.format(alias='cc')},
      COALESCE(cs.total_subventions_par_hab, 0) AS total_subventions_par_hab,
      {_NAT1_COUNTS.format(alias='cnat1')},
      CASE
        WHEN m.famille_nuance IN ('Gauche', 'Centre', 'Droite', 'Extrême droite') THEN m.famille_nuance
        ELSE 'Autres'
      END AS famille_nuance
    FROM locations l
    LEFT JOIN commune_crime cc ON l.cog = cc.cog
      AND cc.annee = (SELECT MAX(annee) FROM commune_crime WHERE cog = l.cog)
    LEFT JOIN commune_subventions cs ON l.cog = cs.cog
    LEFT JOIN commune_nat1 cnat1 ON l.cog = cnat1.code
    LEFT JOIN maires m ON l.cog = m.cog
    WHERE m.cog IS NOT NULL
"""
